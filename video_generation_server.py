import asyncio
import random
import uuid
from datetime import datetime
from typing import Iterable, List, Optional, Union

from aiohttp import web
from loguru import logger

DEMO_VIDEO_URL = "https://videos.example.com/{video_id}.mp4"

ScriptStep = Union[str, int]


class VideoGenerationServer:
    """Local stand-in for the vendor's video API.

    Jobs complete ``completion_time`` seconds after submission unless a
    status script is set, in which case each status query consumes the next
    step: a job state, ``"malformed"`` for a non-JSON body, or an HTTP
    status code to answer with.
    """

    def __init__(
        self,
        completion_time: float = 10.0,
        error_rate: float = 0.1,
        api_keys: Iterable[str] = ("test-key",),
        immediate: bool = False,
        response_delay: float = 0.0,
    ):
        self.completion_time = completion_time
        self.error_rate = error_rate
        self.api_keys = set(api_keys)
        self.immediate = immediate
        self.response_delay = response_delay
        self.status_script: List[ScriptStep] = []
        self.status_requests = 0
        self.queried_ids: List[str] = []
        self.submissions: List[dict] = []
        self.videos = {}
        self.replicas = [
            {"replica_id": "r-training", "replica_name": "Trainee", "status": "training"},
            {"replica_id": "r-ready", "replica_name": "Tutor", "status": "ready"},
        ]
        self.port: Optional[int] = None
        self.runner: Optional[web.AppRunner] = None
        self.app = web.Application()
        self.app.router.add_post("/videos", self.handle_submit)
        self.app.router.add_get("/videos/{video_id}", self.handle_status)
        self.app.router.add_delete("/videos/{video_id}", self.handle_delete)
        self.app.router.add_get("/replicas", self.handle_replicas)
        self.logger = logger

    @property
    def base_url(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    def set_status_script(self, steps: Iterable[ScriptStep]) -> None:
        self.status_script = list(steps)

    def _authorized(self, request: web.Request) -> bool:
        return request.headers.get("x-api-key") in self.api_keys

    async def _delay(self) -> None:
        if self.response_delay:
            await asyncio.sleep(self.response_delay)

    def _unauthorized(self) -> web.Response:
        self.logger.info("Rejecting request with invalid API key")
        return web.json_response({"message": "Invalid access token"}, status=401)

    async def handle_submit(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return self._unauthorized()

        await self._delay()
        payload = await request.json()
        self.submissions.append(payload)
        video_id = uuid.uuid4().hex[:10]
        self.videos[video_id] = datetime.now()

        if self.immediate:
            self.logger.info(f"Returning finished video {video_id}")
            return web.json_response(
                {
                    "video_id": video_id,
                    "status": "completed",
                    "video_url": DEMO_VIDEO_URL.format(video_id=video_id),
                }
            )
        self.logger.info(f"Queued video {video_id}")
        return web.json_response({"video_id": video_id, "status": "queued"})

    def _scripted_response(self, video_id: str) -> web.Response:
        step = self.status_script.pop(0)
        self.logger.info(f"Scripted status step: {step}")
        if isinstance(step, int):
            return web.json_response({"message": "scripted error"}, status=step)
        if step == "malformed":
            return web.Response(text="<html>Bad Gateway</html>", status=200)
        return web.json_response(self._video_body(video_id, step))

    def _video_body(self, video_id: str, status: str) -> dict:
        body = {"video_id": video_id, "status": status}
        if status == "completed":
            body["video_url"] = DEMO_VIDEO_URL.format(video_id=video_id)
            body["download_url"] = body["video_url"] + "?download=1"
        elif status == "failed":
            body["error"] = "Replica could not render the script"
        return body

    async def handle_status(self, request: web.Request) -> web.Response:
        self.status_requests += 1
        if not self._authorized(request):
            return self._unauthorized()

        await self._delay()
        video_id = request.match_info["video_id"]
        self.queried_ids.append(video_id)
        if self.status_script:
            return self._scripted_response(video_id)

        if video_id not in self.videos:
            return web.json_response({"message": "Video not found"}, status=404)

        if random.random() < self.error_rate:
            self.logger.info("Returning failed status")
            return web.json_response(self._video_body(video_id, "failed"))

        elapsed = (datetime.now() - self.videos[video_id]).total_seconds()

        if elapsed >= self.completion_time:
            self.logger.info("Returning completed status")
            return web.json_response(self._video_body(video_id, "completed"))
        else:
            self.logger.info(f"Returning generating status (elapsed: {elapsed:.1f}s)")
            return web.json_response(self._video_body(video_id, "generating"))

    async def handle_delete(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return self._unauthorized()
        if self.videos.pop(request.match_info["video_id"], None) is None:
            return web.json_response({"message": "Video not found"}, status=404)
        return web.Response(status=200)

    async def handle_replicas(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return self._unauthorized()
        return web.json_response({"data": self.replicas})

    async def start(self, port: int = 0):
        """Start serving on 127.0.0.1. Port 0 picks a free port."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, "127.0.0.1", port)
        await site.start()
        self.port = self.runner.addresses[0][1]
        self.logger.info(f"Server started on port {self.port}")
        return site

    async def stop(self) -> None:
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None
