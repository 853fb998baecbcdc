"""Admin endpoints: manual cleanup, rate-limit policies, block list."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Path

from arcod.access.models import (
    BlockedIp,
    BlockedIpCreate,
    RateLimitPolicy,
    RateLimitPolicyUpdate,
)
from arcod.access.policies import AccessPolicyService
from arcod.admin.dependencies import require_admin_api_key
from arcod.jobs.cleanup import CleanupService
from arcod.jobs.models import CleanupResult


router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[Depends(require_admin_api_key)],
)


@router.post("/cleanup", response_model=CleanupResult)
async def run_cleanup():
    return await CleanupService.run_sweep()


# ==================== Rate-limit policies ====================

@router.get("/rate-limits", response_model=List[RateLimitPolicy])
async def list_rate_limits():
    return await AccessPolicyService.list_policies()


@router.put("/rate-limits/{ip}", response_model=RateLimitPolicy)
async def set_rate_limit(body: RateLimitPolicyUpdate, ip: str = Path(..., description="Client IP")):
    return await AccessPolicyService.set_policy(ip, body.max_per_hour, body.note)


@router.delete("/rate-limits/{ip}")
async def delete_rate_limit(ip: str = Path(..., description="Client IP")):
    await AccessPolicyService.delete_policy(ip)
    return {"success": True}


# ==================== Block list ====================

@router.get("/blocked-ips", response_model=List[BlockedIp])
async def list_blocked_ips():
    return await AccessPolicyService.list_blocked()


@router.put("/blocked-ips/{ip}", response_model=BlockedIp)
async def block_ip(body: BlockedIpCreate, ip: str = Path(..., description="Client IP")):
    return await AccessPolicyService.block(ip, body.reason)


@router.delete("/blocked-ips/{ip}")
async def unblock_ip(ip: str = Path(..., description="Client IP")):
    await AccessPolicyService.unblock(ip)
    return {"success": True}
