"""Guest quota endpoint."""

from fastapi import APIRouter, Depends

from arcod.access.models import GuestRateLimitResponse
from arcod.access.rate_limit import guest_limiter
from arcod.core.dependencies import get_client_ip

router = APIRouter(prefix="/guest", tags=["Guest"])


@router.get("/rate-limit", response_model=GuestRateLimitResponse)
async def get_guest_rate_limit(ip: str = Depends(get_client_ip)):
    status = await guest_limiter().get_status(ip)
    return GuestRateLimitResponse(
        ip=ip,
        downloads_this_hour=status.count,
        limit=status.limit,
        remaining=status.remaining,
        resets_at=status.resets_at,
        is_limited=status.is_limited,
    )
