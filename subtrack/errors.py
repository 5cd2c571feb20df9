"""
Error kinds raised by the application layer.

Every error carries a stable machine-readable ``code`` and the HTTP status the
API layer maps it to. ``retryable`` separates transient service problems from
client-correctable ones.
"""
from typing import Any


class AppError(Exception):
    status_code = 500
    code = "INTERNAL"
    retryable = False

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class ValidationError(AppError, ValueError):
    """Malformed input, rejected before any mutation."""
    status_code = 400
    code = "BAD_REQUEST"


class UnauthorizedError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(AppError):
    """Record absent or not owned by the caller."""
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(AppError):
    """Operation not allowed in the record's current state."""
    status_code = 409
    code = "CONFLICT"


class RateLimitedError(AppError):
    status_code = 429
    code = "RATE_LIMITED"
    retryable = True


class FxUnavailableError(AppError):
    """No FX snapshot can be served (upstream down and nothing cached)."""
    status_code = 503
    code = "FX_UNAVAILABLE"
    retryable = True

    def __init__(self, message: str = "FX rates unavailable", details: Any = None):
        super().__init__(message, details)


class ConversionError(RuntimeError):
    """Currency arithmetic produced a non-finite value."""
