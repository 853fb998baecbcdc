"""
Common dependencies for FastAPI routes.
"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from arcod.auth.models import Caller, guest_caller
from arcod.core.config import get_settings
from arcod.core.exceptions import UnauthorizedException

# HTTP Bearer token security scheme
security_optional = HTTPBearer(auto_error=False)


def _verify(token: str) -> Optional[dict]:
    """Verify a bearer token. Import here to avoid circular imports."""
    from arcod.auth.service import AuthService
    return AuthService.verify(token)


def get_client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for") or ""
    ip = forwarded.split(",")[0].strip()
    if not ip and request.client:
        ip = (request.client.host or "").strip()
    return ip or "unknown"


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_optional)
) -> dict:
    """
    Dependency to get the current authenticated user from the bearer token.
    Returns user dict with 'id' and 'email'.
    """
    if not credentials:
        raise UnauthorizedException("Authentication required")

    user = _verify(credentials.credentials)
    if not user:
        raise UnauthorizedException("Invalid or expired token")
    return user


async def get_caller(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_optional),
) -> Caller:
    """
    Resolve the caller for job creation.

    A credential that is present but invalid is rejected rather than treated
    as a guest.
    """
    settings = get_settings()
    ip = get_client_ip(request)
    user_agent = request.headers.get("user-agent") or ""

    if credentials:
        user = _verify(credentials.credentials)
        if not user:
            raise UnauthorizedException("Invalid or expired token")
        return Caller(user_id=user["id"], email=user.get("email"), ip=ip, user_agent=user_agent)

    if not settings.ALLOW_GUEST_DOWNLOADS:
        raise UnauthorizedException("Authentication required")
    return guest_caller(ip, settings.GUEST_EMAIL_DOMAIN, user_agent)
