"""Custom exceptions for the admission layer."""

from typing import Any


class EdugateException(Exception):
    """Base class for application exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500

    def __init__(self, message: str = "Internal server error"):
        self.message = message
        super().__init__(message)


class RateLimitExceededError(EdugateException):
    """Raised when a bucket has no quota left in its current window.

    Maps to HTTP 429 Too Many Requests. This is an expected, user-facing
    outcome and is never logged as a fault.
    """
    status_code = 429

    def __init__(
        self,
        message: str = "Too many requests, please try again later",
        retry_after: int = 0,
        limit: int | None = None,
        reset_time: int | None = None,
        limiter: str | None = None,
    ):
        self.retry_after = retry_after
        self.limit = limit
        self.reset_time = reset_time
        self.limiter = limiter
        super().__init__(message)

    def to_response(self) -> dict[str, Any]:
        """Convert to the rejection body clients receive."""
        return {
            "success": False,
            "message": self.message,
            "retryAfter": self.retry_after,
        }


class StoreUnavailableError(EdugateException):
    """Raised when the distributed rate limit store cannot serve a request.

    Internal only: the fallback backend catches it and answers from
    process-local state, so callers never see it.
    """
    status_code = 503

    def __init__(self, operation: str, cause: BaseException | None = None):
        self.operation = operation
        self.cause = cause
        detail = f"Rate limit store unavailable during {operation}"
        if cause is not None:
            detail += f": {cause}"
        super().__init__(detail)
