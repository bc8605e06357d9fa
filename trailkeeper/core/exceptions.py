"""
Exception classes for the application.

Every HTTP-facing error carries a machine-readable `kind` next to its
human-readable message.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class AppError(HTTPException):
    """Base class for errors rendered into the error envelope."""

    kind: str = "error"

    def __init__(
        self,
        status_code: int,
        message: str,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.message = message
        self.extra = extra or {}


class ValidationError(AppError):
    """Raised when input validation fails."""

    kind = "validation_error"

    def __init__(self, message: str):
        super().__init__(status.HTTP_422_UNPROCESSABLE_ENTITY, message)


class NotFoundError(AppError):
    """Raised when a requested resource is not found."""

    kind = "not_found"

    def __init__(self, resource_type: str, resource_id):
        super().__init__(
            status.HTTP_404_NOT_FOUND,
            f"{resource_type} not found",
            extra={"requestedCode": resource_id},
        )


class GoneError(AppError):
    """Raised when a resource existed but has expired."""

    kind = "gone"

    def __init__(self, resource_type: str, expires_at: int):
        super().__init__(
            status.HTTP_410_GONE,
            f"{resource_type} has expired",
            extra={"expired": True, "expiresAt": expires_at},
        )


class ConflictError(AppError):
    """Raised when there's a conflict with existing data."""

    kind = "conflict"

    def __init__(self, message: str):
        super().__init__(status.HTTP_409_CONFLICT, message)


class StorageFailureError(AppError):
    """Raised when reading or writing the draft collection fails."""

    kind = "storage_failure"

    def __init__(self, message: str = "Storage operation failed"):
        super().__init__(status.HTTP_500_INTERNAL_SERVER_ERROR, message)


class StorageTimeoutError(StorageFailureError):
    """Raised when a storage call exceeds its deadline."""

    kind = "storage_timeout"

    def __init__(self, operation: str, timeout_seconds: float):
        AppError.__init__(
            self,
            status.HTTP_503_SERVICE_UNAVAILABLE,
            f"Storage operation '{operation}' timed out after {timeout_seconds:g}s",
        )


class UnauthorizedError(AppError):
    """Raised when a request carries no usable credential."""

    kind = "unauthorized"

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(
            status.HTTP_401_UNAUTHORIZED,
            message,
            extra={"reason": reason} if reason else None,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenError(AppError):
    """Raised when a valid identity may not act on a resource."""

    kind = "forbidden"

    def __init__(self, message: str = "Forbidden"):
        super().__init__(status.HTTP_403_FORBIDDEN, message)


class ConfigurationError(Exception):
    """Raised at startup when required settings are missing or invalid."""
