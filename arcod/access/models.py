"""Access control models (rate-limit policies, blocked addresses, guest status)."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class RateLimitPolicy(BaseModel):
    ip: str
    max_per_hour: int = Field(..., ge=0, description="0 disables the limit for this address.")
    note: Optional[str] = Field(default=None, max_length=500)
    updated_at: Optional[datetime] = None


class RateLimitPolicyUpdate(BaseModel):
    max_per_hour: int = Field(..., ge=0)
    note: Optional[str] = Field(default=None, max_length=500)


class BlockedIp(BaseModel):
    ip: str
    reason: Optional[str] = Field(default=None, max_length=500)
    created_at: Optional[datetime] = None


class BlockedIpCreate(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class GuestRateLimitResponse(BaseModel):
    ip: str
    downloads_this_hour: int
    limit: int
    remaining: int
    resets_at: datetime
    is_limited: bool
