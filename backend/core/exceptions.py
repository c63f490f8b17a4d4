"""Custom exceptions for the storefront backend."""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Machine-readable error codes returned to callers."""

    UNAUTHORIZED = "UNAUTHORIZED"
    RATE_LIMITED = "RATE_LIMITED"
    CONFLICT = "CONFLICT"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    TENANT_NOT_FOUND = "TENANT_NOT_FOUND"
    TENANT_INACTIVE = "TENANT_INACTIVE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class StorefrontException(Exception):
    """Base exception for the storefront backend.

    `message` is the internal, detailed message (logged server-side);
    `public_message` is what callers see outside development.
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    status_code: int = 500
    public_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        """Initialize exception with an optional internal message.

        Args:
            message: Internal exception message, defaults to the public one
        """
        self.message = message or self.public_message
        super().__init__(self.message)


class MisconfiguredError(StorefrontException):
    """Server-side configuration is missing (e.g. no webhook secrets)."""

    code = ErrorCode.INTERNAL_ERROR
    status_code = 500
    public_message = "Internal server error"


class RateLimitedError(StorefrontException):
    """Caller exceeded its request quota."""

    code = ErrorCode.RATE_LIMITED
    status_code = 429
    public_message = "Too many requests"

    def __init__(self, message: Optional[str] = None, reset_at: Optional[int] = None):
        """Initialize RateLimitedError.

        Args:
            message: Internal exception message
            reset_at: Unix time in milliseconds when the caller may retry
        """
        super().__init__(message)
        self.reset_at = reset_at


class PayloadTooLargeError(StorefrontException):
    """Declared or actual body size exceeds the limit."""

    code = ErrorCode.PAYLOAD_TOO_LARGE
    status_code = 413
    public_message = "Payload too large"


class UnauthorizedError(StorefrontException):
    """Authentication failed. Deliberately undifferentiated for callers."""

    code = ErrorCode.UNAUTHORIZED
    status_code = 401
    public_message = "Authentication required"


class UnprocessablePayloadError(StorefrontException):
    """Authenticated request with a semantically invalid body."""

    code = ErrorCode.VALIDATION_ERROR
    status_code = 422
    public_message = "Validation failed"


class ConflictError(StorefrontException):
    """The operation was already performed."""

    code = ErrorCode.CONFLICT
    status_code = 409
    public_message = "Already processed"


class TenantNotFoundError(StorefrontException):
    """No tenant is configured for a hostname."""

    code = ErrorCode.TENANT_NOT_FOUND
    status_code = 404
    public_message = "Tenant not found"


class TenantInactiveError(StorefrontException):
    """Tenant exists but is switched off."""

    code = ErrorCode.TENANT_INACTIVE
    status_code = 403
    public_message = "Tenant is inactive"
