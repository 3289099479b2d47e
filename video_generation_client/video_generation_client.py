import asyncio
import inspect
import json
from typing import Any, Callable, List, Optional, Union
from urllib.parse import quote

import aiohttp
from loguru import logger
from video_generation_client.credentials import CredentialProvider
from video_generation_client.errors import (
    CredentialInvalidError,
    ProtocolViolationError,
    RemoteUnavailableError,
    ThrottledError,
    error_from_response,
)
from video_generation_client.models import (
    WIRE_STATES,
    JobHandle,
    JobState,
    JobStatusSnapshot,
    OutcomeKind,
    Pending,
    PollingConfig,
    PollOutcome,
    Ready,
    Replica,
    SubmitOutcome,
    VideoRequest,
    VideoResult,
)
from video_generation_client.script import build_educational_script
from video_generation_client.settings import VideoClientSettings

API_KEY_HEADER = "x-api-key"


def video_path(video_id: str) -> str:
    """Builds the resource path for a video id, escaping it as one segment"""
    video_id = JobHandle(job_id=video_id).job_id
    return f"/videos/{quote(video_id, safe='')}"


def pick_default_replica(replicas: List[Replica]) -> Optional[Replica]:
    """Returns the first ready replica, falling back to the first one listed"""
    for replica in replicas:
        if replica.status == "ready":
            return replica
    return replicas[0] if replicas else None


class VideoGenerationClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        credentials: Optional[CredentialProvider] = None,
        config: Optional[PollingConfig] = None,
        on_status_change: Optional[Callable[[JobStatusSnapshot], Any]] = None,
        settings: Optional[VideoClientSettings] = None,
    ):
        if settings is None and any(arg is None for arg in (base_url, credentials, config)):
            settings = VideoClientSettings()
        self.base_url = (base_url or settings.base_url).rstrip("/")
        self.credentials = credentials or CredentialProvider.from_settings(settings)
        self.config = config or settings.polling_config()
        self.logger = logger
        self.on_status_change = on_status_change

    def _session(self, config: PollingConfig) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=config.request_timeout)
        )

    def _headers(self) -> dict:
        credential = self.credentials.current()
        if not credential:
            raise CredentialInvalidError("No API credential configured")
        return {API_KEY_HEADER: credential}

    async def _request(
        self,
        session: aiohttp.ClientSession,
        method: str,
        path: str,
        payload: Optional[dict] = None,
        expect_json: bool = True,
    ) -> Optional[dict]:
        """Sends one request and returns the decoded JSON object.

        Failed responses are raised as the classified error; connection
        problems and request timeouts become RemoteUnavailableError.
        """
        url = f"{self.base_url}{path}"
        headers = self._headers()

        try:
            async with session.request(
                method, url, json=payload, headers=headers
            ) as response:
                body = await response.text()
                if response.status >= 400:
                    error = error_from_response(
                        response.status, body, response.headers.get("Retry-After")
                    )
                    if isinstance(error, ProtocolViolationError):
                        self.logger.error(
                            f"HTTP error {response.status} at {method} {url}: {body[:500]!r}"
                        )
                    else:
                        self.logger.error(f"HTTP error {response.status} at {method} {url}")
                    raise error
                status = response.status
        except aiohttp.ClientError as e:
            self.logger.warning(f"Network error at {method} {url}: {e}")
            raise RemoteUnavailableError(f"Network error: {e}") from e
        except asyncio.TimeoutError as e:
            self.logger.warning(f"Request to {method} {url} timed out")
            raise RemoteUnavailableError(f"Request to {url} timed out") from e

        if not expect_json:
            return None

        try:
            data = json.loads(body)
        except ValueError:
            data = None
        if not isinstance(data, dict):
            self.logger.error(f"Malformed response from {url}: {body!r}")
            raise ProtocolViolationError(
                f"Expected a JSON object from {url}", status=status, body=body
            )
        return data

    def _parse_snapshot(self, data: dict, elapsed_time: float) -> JobStatusSnapshot:
        raw_state = data.get("status")
        try:
            if not isinstance(raw_state, str):
                raise ValueError(raw_state)
            state = WIRE_STATES.get(raw_state) or JobState(raw_state)
        except ValueError:
            self.logger.error(f"Unknown job status in response: {data!r}")
            raise ProtocolViolationError(
                f"Unknown job status {raw_state!r}", body=json.dumps(data)
            )

        result = None
        error_detail = None
        if state == JobState.completed:
            if not data.get("video_url"):
                self.logger.error(f"Completed job without a video URL: {data!r}")
                raise ProtocolViolationError(
                    "Completed job has no video_url", body=json.dumps(data)
                )
            result = VideoResult(
                video_url=data["video_url"],
                download_url=data.get("download_url"),
                job_id=data.get("video_id"),
            )
        elif state == JobState.failed:
            error_detail = (
                data.get("error")
                or data.get("status_details")
                or "Video generation failed"
            )

        return JobStatusSnapshot(
            state=state,
            result=result,
            error_detail=error_detail,
            raw_response=data,
            elapsed_time=elapsed_time,
        )

    async def _get_status_once(
        self, session: aiohttp.ClientSession, job_id: str
    ) -> JobStatusSnapshot:
        """Fetches the status of a job from the vendor"""
        start_time = asyncio.get_running_loop().time()
        data = await self._request(session, "GET", video_path(job_id))
        elapsed_time = asyncio.get_running_loop().time() - start_time
        return self._parse_snapshot(data, elapsed_time)

    async def _handle_status_change(
        self, snapshot: JobStatusSnapshot, last_state: Optional[JobState]
    ) -> None:
        """Invoke the status change callback if the state has changed"""
        if last_state != snapshot.state and self.on_status_change is not None:
            self.logger.debug(f"Job state changed to {snapshot.state.value}")
            result = self.on_status_change(snapshot)
            if inspect.isawaitable(result):
                await result

    async def _wait_before_retry(
        self, config: PollingConfig, cancel_event: Optional[asyncio.Event]
    ) -> None:
        """Waits the polling interval, returning early if the poll is cancelled"""
        self.logger.debug(
            f"Job not finished, waiting {config.interval_seconds:.2f}s before next attempt"
        )
        if cancel_event is None:
            await asyncio.sleep(config.interval_seconds)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=config.interval_seconds)
        except asyncio.TimeoutError:
            pass

    async def submit(self, request: VideoRequest) -> SubmitOutcome:
        """Submits a generation request.

        Returns Ready when the vendor finished synchronously, Pending with a
        job handle otherwise.
        """
        self.logger.info(f"Submitting video generation request {request.video_name!r}")
        async with self._session(self.config) as session:
            data = await self._request(
                session, "POST", "/videos", request.model_dump(exclude_none=True)
            )

        if data.get("video_url"):
            self.logger.info(f"Video immediately available: {data['video_url']}")
            return Ready(
                result=VideoResult(
                    video_url=data["video_url"],
                    download_url=data.get("download_url"),
                    job_id=data.get("video_id"),
                )
            )
        if data.get("video_id"):
            self.logger.info(f"Video generation accepted as job {data['video_id']}")
            return Pending(handle=JobHandle(job_id=data["video_id"]))

        self.logger.error(f"Submission response has neither video_url nor video_id: {data!r}")
        raise ProtocolViolationError(
            "No video URL or ID returned by the vendor", body=json.dumps(data)
        )

    async def poll_until_done(
        self,
        handle: Union[JobHandle, str],
        config: Optional[PollingConfig] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PollOutcome:
        """Poll the job status until it completes, fails, times out or is cancelled.

        Throttling and transient vendor or network errors use up an attempt
        and polling continues. Credential and protocol errors are raised
        immediately.
        """
        if isinstance(handle, str):
            handle = JobHandle(job_id=handle)
        config = config or self.config
        loop = asyncio.get_running_loop()
        start_time = loop.time()
        attempt = 0
        last_state = None

        def outcome(kind: OutcomeKind, queries: int, **fields) -> PollOutcome:
            return PollOutcome(
                kind=kind,
                attempts=queries,
                elapsed_time=loop.time() - start_time,
                **fields,
            )

        self.logger.info(
            f"Polling job {handle.job_id} (max {config.max_attempts} attempts, "
            f"{config.interval_seconds}s interval)"
        )
        async with self._session(config) as session:
            while True:
                if cancel_event is not None and cancel_event.is_set():
                    self.logger.info(f"Polling of job {handle.job_id} cancelled")
                    return outcome(OutcomeKind.cancelled, attempt)

                try:
                    snapshot = await self._get_status_once(session, handle.job_id)
                except (ThrottledError, RemoteUnavailableError) as polling_error:
                    self.logger.warning(
                        f"Attempt {attempt + 1}/{config.max_attempts} for job "
                        f"{handle.job_id} failed: {polling_error}"
                    )
                else:
                    await self._handle_status_change(snapshot, last_state)
                    last_state = snapshot.state

                    if snapshot.state == JobState.completed:
                        self.logger.info(f"Job {handle.job_id} completed")
                        return outcome(
                            OutcomeKind.success, attempt + 1, result=snapshot.result
                        )
                    if snapshot.state == JobState.failed:
                        self.logger.info(
                            f"Job {handle.job_id} failed: {snapshot.error_detail}"
                        )
                        return outcome(
                            OutcomeKind.failure,
                            attempt + 1,
                            error_detail=snapshot.error_detail,
                        )

                attempt += 1
                if attempt >= config.max_attempts:
                    self.logger.info(
                        f"Job {handle.job_id} still running after {attempt} attempts"
                    )
                    return outcome(
                        OutcomeKind.timeout,
                        attempt,
                        error_detail=f"Job did not finish within {attempt} attempts",
                    )
                await self._wait_before_retry(config, cancel_event)

    async def get_video_status(self, video_id: str) -> JobStatusSnapshot:
        async with self._session(self.config) as session:
            return await self._get_status_once(session, video_id)

    async def list_replicas(self) -> List[Replica]:
        async with self._session(self.config) as session:
            data = await self._request(session, "GET", "/replicas")
        items = data.get("data") or data.get("replicas") or []
        self.logger.debug(f"{len(items)} replicas available")
        return [Replica.model_validate(item) for item in items]

    async def delete_video(self, video_id: str) -> bool:
        """Deletes a video. Returns False if the vendor no longer knows it."""
        async with self._session(self.config) as session:
            try:
                await self._request(
                    session, "DELETE", video_path(video_id), expect_json=False
                )
            except ProtocolViolationError as e:
                if e.status == 404:
                    return False
                raise
        self.logger.info(f"Deleted video {video_id}")
        return True

    async def generate_video(
        self,
        title: str,
        description: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PollOutcome:
        """Generates a study video for a topic and waits for the result"""
        start_time = asyncio.get_running_loop().time()
        replica = pick_default_replica(await self.list_replicas())
        if replica is None:
            self.logger.warning("No replicas available, using the vendor default")

        request = VideoRequest(
            script=build_educational_script(title, description),
            video_name=f"StudySnap: {title}",
            replica_id=replica.replica_id if replica else None,
        )
        submitted = await self.submit(request)
        if isinstance(submitted, Ready):
            return PollOutcome(
                kind=OutcomeKind.success,
                result=submitted.result,
                attempts=0,
                elapsed_time=asyncio.get_running_loop().time() - start_time,
            )
        return await self.poll_until_done(submitted.handle, cancel_event=cancel_event)
