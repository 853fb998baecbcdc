"""
Custom application exceptions.

Every exception carries a short machine-readable ``code``; ``extra`` holds
structured data rendered next to the message (quota counters, retry hints).
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    code = "internal_error"

    def __init__(
        self,
        detail: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.extra = extra or {}


class ValidationException(AppException):
    """Bad or missing input."""

    code = "validation_error"

    def __init__(self, detail: str = "Bad request"):
        super().__init__(detail=detail, status_code=status.HTTP_400_BAD_REQUEST)


class UnauthorizedException(AppException):
    """Unauthorized access exception."""

    code = "unauthenticated"

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            detail=detail,
            status_code=status.HTTP_401_UNAUTHORIZED,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenException(AppException):
    code = "forbidden"

    def __init__(self, detail: str = "Forbidden"):
        super().__init__(detail=detail, status_code=status.HTTP_403_FORBIDDEN)


class NotFoundException(AppException):
    """Resource not found exception."""

    code = "not_found"

    def __init__(self, detail: str = "Resource not found"):
        super().__init__(detail=detail, status_code=status.HTTP_404_NOT_FOUND)


class InvalidTransitionException(AppException):
    """The job's current status does not allow the requested change."""

    code = "invalid_transition"

    def __init__(self, detail: str = "Invalid status transition"):
        super().__init__(detail=detail, status_code=status.HTTP_409_CONFLICT)


class QuotaExceededException(AppException):
    code = "quota_exceeded"

    def __init__(self, detail: str, *, limit: int, remaining: int, resets_at: str):
        super().__init__(
            detail=detail,
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            extra={"limit": limit, "remaining": remaining, "resets_at": resets_at},
            headers={
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Remaining": str(remaining),
                "X-RateLimit-Reset": resets_at,
            },
        )


class CapacityExceededException(AppException):
    code = "capacity_exceeded"

    def __init__(self, detail: str = "Server is at capacity. Please try again in a few minutes.", *, retry_after: int = 60):
        super().__init__(
            detail=detail,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            extra={"retry_after": retry_after},
            headers={"Retry-After": str(retry_after)},
        )


class StoreUnavailableException(AppException):
    """Job Store could not be reached; safe to retry."""

    code = "store_unavailable"

    def __init__(self, detail: str = "Storage is temporarily unavailable. Please retry."):
        super().__init__(detail=detail, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
