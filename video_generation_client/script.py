from urllib.parse import urlparse

_SCRIPT_TEMPLATE = """\
Hello and welcome to this educational video on {title}!

I'm excited to guide you through this important topic today. Let's dive right in.

{description}

This material is designed to help you understand the key concepts and prepare you for your upcoming quiz.

First, we'll explore the fundamental concepts that form the foundation of this topic. Understanding these basics is crucial for grasping the more complex ideas that follow.

Next, we'll examine how these concepts apply in real-world scenarios, so you can see why what you're learning matters.

We'll also discuss common misconceptions that students often run into, so you can avoid them.

Finally, we'll review some strategies for remembering and applying this information.

Feel free to pause and replay any sections that you find challenging. Learning is a process, and it's normal to review material more than once before it clicks.

After watching, review the flashcards to reinforce your understanding, then test yourself with the quiz.

Good luck with your studies! Let's begin our exploration of {title}."""


def build_educational_script(title: str, description: str) -> str:
    """Builds the narration a replica reads for a study video."""
    if not title.strip():
        raise ValueError("title must not be empty")
    return _SCRIPT_TEMPLATE.format(
        title=title.strip(), description=description.strip()
    ).strip()


def is_valid_video_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
