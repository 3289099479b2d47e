from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class JobState(str, Enum):
    queued = "queued"
    in_progress = "in_progress"
    completed = "completed"
    failed = "failed"


# Vendor spellings that differ from ours
WIRE_STATES = {
    "pending": JobState.queued,
    "generating": JobState.in_progress,
}


class OutcomeKind(str, Enum):
    success = "success"
    failure = "failure"
    timeout = "timeout"
    cancelled = "cancelled"


class JobHandle(BaseModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    job_id: str = Field(min_length=1)
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class VideoResult(BaseModel):
    video_url: str
    download_url: Optional[str] = None
    job_id: Optional[str] = None


class JobStatusSnapshot(BaseModel):
    state: JobState
    result: Optional[VideoResult] = None
    error_detail: Optional[str] = None
    raw_response: dict
    elapsed_time: float

    @model_validator(mode="after")
    def _check_fields_match_state(self):
        if (self.result is not None) != (self.state == JobState.completed):
            raise ValueError("result must be set exactly when state is completed")
        if (self.error_detail is not None) != (self.state == JobState.failed):
            raise ValueError("error_detail must be set exactly when state is failed")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.state in (JobState.completed, JobState.failed)


class PollingConfig(BaseModel):
    max_attempts: int = Field(default=40, gt=0)
    interval_seconds: float = Field(default=15.0, ge=0)  # 0 disables the wait in tests
    request_timeout: float = Field(default=30.0, gt=0)


class PollOutcome(BaseModel):
    kind: OutcomeKind
    result: Optional[VideoResult] = None
    error_detail: Optional[str] = None
    attempts: int = Field(ge=0)
    elapsed_time: float

    @model_validator(mode="after")
    def _check_payload(self):
        if self.kind == OutcomeKind.success:
            if self.result is None or self.error_detail is not None:
                raise ValueError("success carries a result and no error detail")
        elif self.result is not None:
            raise ValueError(f"{self.kind.value} outcome cannot carry a result")
        return self


class Ready(BaseModel):
    result: VideoResult


class Pending(BaseModel):
    handle: JobHandle


SubmitOutcome = Union[Ready, Pending]


class VideoRequest(BaseModel):
    script: str = Field(min_length=1)
    replica_id: Optional[str] = None
    video_name: Optional[str] = None
    background_url: Optional[str] = None
    callback_url: Optional[str] = None


class Replica(BaseModel):
    replica_id: str
    replica_name: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[str] = None
