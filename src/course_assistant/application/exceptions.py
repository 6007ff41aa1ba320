"""Application-level exceptions.

These are business-logic errors, not HTTP errors. The presentation layer
(e.g. FastAPI routes) translates them into appropriate HTTP responses.
"""

from __future__ import annotations


class CourseAssistantError(Exception):
    """Base class for every error raised by the course assistant core."""


class ValidationError(CourseAssistantError, ValueError):
    """Raised when the caller provides malformed input (empty text, bad id)."""


class EmptyInputError(ValidationError):
    """Raised when text sent to the embedding endpoint is empty after trimming."""


class VectorLengthMismatchError(CourseAssistantError, ValueError):
    """Raised when two vectors of different dimensionality are compared."""


class NotFoundError(CourseAssistantError):
    """Raised when a conversation (or a student's conversations) cannot be found."""


class IndexingFailedError(CourseAssistantError):
    """Raised when not a single chunk of a document could be indexed."""


# ---------------------------------------------------------------------------
# Upstream (embedding / completion API) errors
# ---------------------------------------------------------------------------


class UpstreamError(CourseAssistantError):
    """Generic upstream API failure carrying the original status and message."""

    def __init__(self, status_code: int | None, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Upstream API error ({status_code}): {message}")


class RateLimitError(UpstreamError):
    """Upstream rate limit still exceeded after all retries."""

    def __init__(self, message: str = "Rate limit exceeded. Please try again in a few moments.",
                 retry_after: float | None = None) -> None:
        super().__init__(429, message)
        self.retry_after = retry_after


class ServiceUnavailableError(UpstreamError):
    """Upstream returned a server error (5xx) after all retries."""

    def __init__(
        self,
        message: str = "Upstream service is temporarily unavailable. Please try again later.",
        status_code: int = 503,
    ) -> None:
        super().__init__(status_code, message)


class InvalidCredentialsError(UpstreamError):
    """Upstream rejected the configured API key."""

    def __init__(self, message: str = "Invalid API key. Please check your configuration.") -> None:
        super().__init__(401, message)
