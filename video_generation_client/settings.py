from typing import Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from video_generation_client.models import PollingConfig

DEFAULT_BASE_URL = "https://tavusapi.com/v2"


class VideoClientSettings(BaseSettings):
    """Client settings read from ``VIDEO_CLIENT_*`` variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="VIDEO_CLIENT_", env_file=".env", extra="ignore"
    )

    api_key: Optional[SecretStr] = None
    base_url: str = DEFAULT_BASE_URL
    max_attempts: int = Field(default=40, gt=0)
    interval_seconds: float = Field(default=15.0, ge=0)
    request_timeout: float = Field(default=30.0, gt=0)

    def polling_config(self) -> PollingConfig:
        return PollingConfig(
            max_attempts=self.max_attempts,
            interval_seconds=self.interval_seconds,
            request_timeout=self.request_timeout,
        )
