"""chapterlens exception hierarchy.

Provides a structured exception tree so callers can tell a missing
credential from a throttled request from a broken upstream. Network
failures are not wrapped: ``httpx.TransportError`` reaches the caller
unchanged.
"""

from __future__ import annotations


class ChapterLensError(Exception):
    """Base for all chapterlens exceptions."""


class ConfigError(ChapterLensError):
    """Raised when configuration loading or validation fails."""


class PreconditionError(ChapterLensError):
    """A request was rejected before any I/O happened. Never retried."""


class MissingCredentialError(PreconditionError):
    """No API key was supplied for a request that needs one."""

    def __init__(self, message: str = "API key is required for text analysis"):
        super().__init__(message)


class UnsupportedAnalysisError(PreconditionError):
    """The requested analysis kind has no prompt template."""

    def __init__(self, kind: object):
        super().__init__(f"Unsupported analysis type: {kind}")
        self.kind = kind


class ModelError(ChapterLensError):
    """The model endpoint rejected or failed a request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(ModelError):
    """HTTP 401. The stored credential should be dropped and re-prompted."""

    def __init__(
        self,
        message: str = "Invalid API key. Please check your credentials and try again.",
    ):
        super().__init__(message, status_code=401)


class ThrottledError(ModelError):
    """HTTP 429. Retryable after ``retry_after`` seconds."""

    def __init__(self, retry_after: float = 5.0, message: str = ""):
        super().__init__(
            message or "Rate limit exceeded. Please wait a moment and try again.",
            status_code=429,
        )
        self.retry_after = retry_after


class MaxRetriesError(ModelError):
    """Throttling persisted past the configured retry count."""

    def __init__(self, attempts: int):
        super().__init__("Maximum retries reached", status_code=429)
        self.attempts = attempts


class UpstreamAPIError(ModelError):
    """Any other non-2xx response, or a malformed success body."""


class RateLimitExceededError(ChapterLensError):
    """The local gate has no room and the call is refused rather than delayed."""

    def __init__(self, wait_ms: int):
        seconds = -(-max(0, wait_ms) // 1000)
        super().__init__(
            f"Rate limit reached. Please try again in {seconds} seconds."
        )
        self.wait_ms = wait_ms
