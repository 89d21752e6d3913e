"""Error classes for the chat service.

The set of error kinds is closed: every failure surfaced to a caller is one of
the subclasses below, each with a fixed machine-readable code and HTTP status.
"""

from typing import Any

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    message: str
    details: dict[str, Any] | None = None


class ChatServiceError(Exception):
    """Base exception for chat service errors."""

    error: str = "INTERNAL_SERVER_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.details = details
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert exception to error response model."""
        return ErrorResponse(
            error=self.error,
            message=self.message,
            details=self.details,
        )


class NotFoundError(ChatServiceError):
    """Referenced session or message is absent or owned by someone else."""

    error = "NOT_FOUND"
    status_code = 404


class ValidationError(ChatServiceError):
    """Content, title or paging input violates its constraints."""

    error = "BAD_REQUEST"
    status_code = 400


class ConflictError(ChatServiceError):
    """Write would break a uniqueness rule (duplicate reaction)."""

    error = "CONFLICT"
    status_code = 409


class RateLimitedError(ChatServiceError):
    """Admission denied by the rate limiter."""

    error = "TOO_MANY_REQUESTS"
    status_code = 429

    def __init__(self, retry_after_seconds: int) -> None:
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            message=f"Rate limit exceeded. Try again in {retry_after_seconds} seconds.",
            details={"retry_after_seconds": retry_after_seconds},
        )


class InternalFailureError(ChatServiceError):
    """Store or collaborator failure. The message is always generic."""

    error = "INTERNAL_SERVER_ERROR"
    status_code = 500

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(message=message)


def session_not_found() -> NotFoundError:
    """Error for a session that is missing or not owned by the caller."""
    return NotFoundError("Chat session not found")


def message_not_found() -> NotFoundError:
    """Error for a message that is missing or not owned by the caller."""
    return NotFoundError("Message not found")
