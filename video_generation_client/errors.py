"""Error kinds shared by job submission and status polling.

Vendor HTTP responses are mapped onto a closed set of kinds by
:func:`classify`, so callers branch on meaning instead of status codes.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    credential_invalid = "credential_invalid"
    throttled = "throttled"
    remote_unavailable = "remote_unavailable"
    protocol_violation = "protocol_violation"


class VideoClientError(Exception):
    kind: ErrorKind
    retryable: bool = False

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class CredentialInvalidError(VideoClientError):
    """The vendor rejected the API key. Waiting will not fix it."""

    kind = ErrorKind.credential_invalid


class ThrottledError(VideoClientError):
    kind = ErrorKind.throttled
    retryable = True

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, status)
        self.retry_after = retry_after


class RemoteUnavailableError(VideoClientError):
    kind = ErrorKind.remote_unavailable
    retryable = True


class ProtocolViolationError(VideoClientError):
    """The response did not have the shape the vendor documents."""

    kind = ErrorKind.protocol_violation

    def __init__(
        self, message: str, status: Optional[int] = None, body: Optional[str] = None
    ):
        super().__init__(message, status)
        self.body = body


_ERRORS = {
    ErrorKind.credential_invalid: CredentialInvalidError,
    ErrorKind.throttled: ThrottledError,
    ErrorKind.remote_unavailable: RemoteUnavailableError,
    ErrorKind.protocol_violation: ProtocolViolationError,
}


def classify(http_status: int, body: Optional[str] = None) -> ErrorKind:
    """Maps a failed vendor response onto an :class:`ErrorKind`.

    A 2xx status only reaches here when its body could not be parsed, so it
    counts as a protocol violation like any unexpected 4xx.
    """
    if http_status in (401, 403):
        return ErrorKind.credential_invalid
    if http_status == 429:
        return ErrorKind.throttled
    if http_status == 408 or 500 <= http_status < 600:
        return ErrorKind.remote_unavailable
    return ErrorKind.protocol_violation


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


def error_from_response(
    http_status: int, body: Optional[str], retry_after: Optional[str] = None
) -> VideoClientError:
    """Builds the exception matching the classified kind of a response."""
    kind = classify(http_status, body)
    message = f"Vendor returned {http_status}: {(body or '').strip()[:200]}"
    if kind is ErrorKind.throttled:
        return ThrottledError(
            message, status=http_status, retry_after=parse_retry_after(retry_after)
        )
    if kind is ErrorKind.protocol_violation:
        return ProtocolViolationError(message, status=http_status, body=body)
    return _ERRORS[kind](message, status=http_status)
