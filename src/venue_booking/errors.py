"""Exception hierarchy shared by the gateway, engine and orchestrator."""

from __future__ import annotations

from typing import Optional


class BookingError(Exception):
    """Base exception for the venue booking core."""


class ConfigurationError(BookingError):
    """Credentials or required provider configuration are missing. Never retried."""


class ValidationError(BookingError):
    """Caller input failed shape checks before any provider call was made."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class ProviderError(BookingError):
    """The provider could not be reached or answered with a failure."""


class ProviderTimeoutError(ProviderError):
    """The provider did not respond within the configured deadline."""

    def __init__(self, endpoint: str, timeout_seconds: float):
        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Provider request timed out after {timeout_seconds:g}s [{endpoint}]")


class UpstreamError(ProviderError):
    """Provider failure, with status and body kept for diagnostics."""

    def __init__(self, status_code: int, endpoint: str, body: str = "", reason: str = ""):
        self.status_code = status_code
        self.endpoint = endpoint
        self.body = body
        detail = f": {body}" if body else ""
        label = f"{status_code} {reason}".strip()
        super().__init__(f"Provider API {label} [{endpoint}]{detail}")

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class UnexpectedPayloadError(UpstreamError):
    """The provider answered 2xx but the body could not be read.

    For writes this means the provider accepted the request: the side effect
    exists even though its details are unknown.
    """

    def __init__(self, status_code: int, endpoint: str, body: str = "", reason: str = "unexpected payload"):
        super().__init__(status_code, endpoint, body=body, reason=reason)


class BookingFailedError(UpstreamError):
    """Both booking strategies were exhausted."""

    def __init__(self, cause: ProviderError, primary_error: Optional[BaseException] = None):
        self.cause = cause
        self.primary_error = primary_error
        status = cause.status_code if isinstance(cause, UpstreamError) else 504
        endpoint = getattr(cause, "endpoint", "")
        body = cause.body if isinstance(cause, UpstreamError) else str(cause)
        super().__init__(status, endpoint, body=body, reason="booking failed")
