"""
Exception Classes - Strongly typed exception hierarchy.

Every error carries typed attributes, a stable error code and the HTTP status
the endpoint boundary converts it to.
"""

from uuid import UUID


class TarotError(Exception):
    """Base exception for all gateway errors."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(TarotError):
    """Raised when caller input is missing or malformed."""

    status_code = 400
    error_code = "validation_error"

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class UnauthorizedError(TarotError):
    """Raised when a credential is missing or cannot be resolved."""

    status_code = 401
    error_code = "unauthorized"


class ForbiddenError(TarotError):
    """Raised when a valid credential is not eligible (expired or inactive)."""

    status_code = 403
    error_code = "forbidden"


class AccountNotFoundError(TarotError):
    """Raised when a referenced account doesn't exist."""

    status_code = 404
    error_code = "not_found"

    def __init__(self, key: UUID | str) -> None:
        self.key = key
        super().__init__(f"Account not found: {key}")


class ConflictError(TarotError):
    """Raised when a uniqueness constraint would be violated."""

    status_code = 400
    error_code = "conflict"

    def __init__(self, field: str, value: str) -> None:
        self.field = field
        self.value = value
        super().__init__(f"{field} already exists: {value}")


class QuotaExceededError(TarotError):
    """Raised when an account has no calls remaining."""

    status_code = 429
    error_code = "quota_exceeded"

    def __init__(self, limit: int, used: int) -> None:
        self.limit = limit
        self.used = used
        super().__init__(f"No calls remaining (limit: {limit}, used: {used})")


class UpstreamError(TarotError):
    """Raised when the generative text provider fails."""

    status_code = 500
    error_code = "upstream_error"


class UpstreamTimeoutError(UpstreamError):
    """Raised when the generative text provider doesn't answer in time."""

    error_code = "upstream_timeout"

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Upstream call timed out after {timeout_seconds}s")


class UpstreamNotConfiguredError(UpstreamError):
    """Raised when no provider credentials are configured."""

    status_code = 503
    error_code = "upstream_not_configured"

    def __init__(self) -> None:
        super().__init__("Generative text provider is not configured")
