"""Per-address rate-limit policies and the block list."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from arcod.access.models import BlockedIp, RateLimitPolicy
from arcod.core.database import Database
from arcod.core.exceptions import NotFoundException


def _now() -> datetime:
    return datetime.utcnow()


class AccessPolicyService:
    @staticmethod
    def _policies():
        return Database.get_collection("rate_limit_policies")

    @staticmethod
    def _blocked():
        return Database.get_collection("blocked_ips")

    # ==================== Rate-limit policies ====================

    @classmethod
    async def get_policy(cls, ip: str) -> Optional[RateLimitPolicy]:
        doc = await cls._policies().find_one({"ip": ip}, {"_id": 0})
        return RateLimitPolicy(**doc) if doc else None

    @classmethod
    async def list_policies(cls) -> List[RateLimitPolicy]:
        docs = await cls._policies().find({}, {"_id": 0}).sort("ip", 1).to_list(length=1000)
        return [RateLimitPolicy(**doc) for doc in docs]

    @classmethod
    async def set_policy(cls, ip: str, max_per_hour: int, note: Optional[str] = None) -> RateLimitPolicy:
        policy = RateLimitPolicy(ip=ip, max_per_hour=max_per_hour, note=note, updated_at=_now())
        await cls._policies().update_one(
            {"ip": ip},
            {"$set": policy.model_dump()},
            upsert=True,
        )
        return policy

    @classmethod
    async def delete_policy(cls, ip: str) -> None:
        result = await cls._policies().delete_one({"ip": ip})
        if result.deleted_count == 0:
            raise NotFoundException("Rate limit policy not found")

    # ==================== Block list ====================

    @classmethod
    async def is_blocked(cls, ip: str) -> bool:
        return await cls._blocked().find_one({"ip": ip}, {"_id": 1}) is not None

    @classmethod
    async def list_blocked(cls) -> List[BlockedIp]:
        docs = await cls._blocked().find({}, {"_id": 0}).sort("created_at", -1).to_list(length=1000)
        return [BlockedIp(**doc) for doc in docs]

    @classmethod
    async def block(cls, ip: str, reason: Optional[str] = None) -> BlockedIp:
        entry = BlockedIp(ip=ip, reason=reason, created_at=_now())
        await cls._blocked().update_one(
            {"ip": ip},
            {"$set": {"reason": reason}, "$setOnInsert": {"ip": ip, "created_at": entry.created_at}},
            upsert=True,
        )
        return entry

    @classmethod
    async def unblock(cls, ip: str) -> None:
        result = await cls._blocked().delete_one({"ip": ip})
        if result.deleted_count == 0:
            raise NotFoundException("Blocked IP not found")
