import asyncio

from video_generation_client.credentials import CredentialProvider
from video_generation_client.errors import CredentialInvalidError, VideoClientError
from video_generation_client.models import OutcomeKind, PollingConfig
from video_generation_client.video_generation_client import VideoGenerationClient
from video_generation_server import VideoGenerationServer


async def status_changed(snapshot):
    print(f"Status changed to: {snapshot.state.value}")
    print(f"Request time: {snapshot.elapsed_time:.6f}s")


async def main():
    PORT = 8000
    server = VideoGenerationServer(completion_time=20.0, error_rate=0.1)
    await server.start(port=PORT)
    print(f"Server started on {server.base_url}")

    config = PollingConfig(max_attempts=40, interval_seconds=2.0)

    client = VideoGenerationClient(
        server.base_url,
        CredentialProvider("test-key"),
        config,
        on_status_change=status_changed,
    )

    try:
        outcome = await client.generate_video(
            "Photosynthesis", "How plants turn light into chemical energy."
        )
        if outcome.kind == OutcomeKind.success:
            print(f"Video ready: {outcome.result.video_url}")
        elif outcome.kind == OutcomeKind.failure:
            print(f"Video generation failed, try again: {outcome.error_detail}")
        else:
            print("Still generating, check back later")
        print(f"Total time: {outcome.elapsed_time:.6f}s")
    except CredentialInvalidError:
        print("API key rejected, enter a new one")
    except VideoClientError as e:
        print(f"Error occurred: {e}")
    finally:
        await server.stop()


if __name__ == "__main__":
    asyncio.run(main())
