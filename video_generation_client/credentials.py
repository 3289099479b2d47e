from typing import Optional

from loguru import logger

from video_generation_client.settings import VideoClientSettings


class CredentialProvider:
    """Holds the API key the client sends with every request.

    The client only reads it. Rotation happens through
    :meth:`update_credential`, for example after the vendor answered
    with a credential error and the user entered a new key.
    """

    def __init__(self, credential: Optional[str] = None):
        self._credential = credential.strip() if credential else None
        self.logger = logger

    @classmethod
    def from_settings(cls, settings: VideoClientSettings) -> "CredentialProvider":
        key = settings.api_key.get_secret_value() if settings.api_key else None
        return cls(key)

    @property
    def has_credential(self) -> bool:
        return bool(self._credential)

    def current(self) -> Optional[str]:
        return self._credential

    def update_credential(self, credential: str) -> None:
        if not credential or not credential.strip():
            raise ValueError("credential must not be empty")
        self._credential = credential.strip()
        self.logger.info("API credential updated")
