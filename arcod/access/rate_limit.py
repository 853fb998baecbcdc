"""Mongo-based hourly rate limiting for guests and policy-limited addresses."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from arcod.core.config import get_settings
from arcod.core.database import Database

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitStatus:
    identity: str
    count: int
    limit: int
    remaining: int
    resets_at: datetime
    is_limited: bool


@dataclass(frozen=True)
class IncrementResult:
    count: int
    is_limited: bool


def hour_key(now: datetime) -> str:
    """Fixed hourly bucket, e.g. ``2026-02-03T17``."""
    return now.strftime("%Y-%m-%dT%H")


def next_hour(now: datetime) -> datetime:
    return now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)


class HourlyRateLimiter:
    """
    Counts hits per identity in fixed wall-clock hours.

    Buckets live in ``rate_limits`` keyed ``<scope>:<identity>#<hour>`` and
    expire on their own. Store errors never block the caller: status reads as
    zero and increments report not-limited.
    """

    def __init__(self, scope: str, limit: int):
        self.scope = scope
        self.limit = int(limit)

    @staticmethod
    def _collection():
        return Database.get_collection("rate_limits")

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def _doc_id(self, identity: str, now: datetime) -> str:
        return f"{self.scope}:{identity}#{hour_key(now)}"

    async def get_status(self, identity: str, *, now: Optional[datetime] = None) -> RateLimitStatus:
        now = now or self._now()
        resets_at = next_hour(now)
        try:
            doc = await self._collection().find_one({"_id": self._doc_id(identity, now)})
            count = int((doc or {}).get("count", 0))
        except PyMongoError as e:
            logger.error(f"Error reading rate limit for {self.scope}:{identity}, allowing: {e}")
            count = 0

        return RateLimitStatus(
            identity=identity,
            count=count,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            resets_at=resets_at,
            is_limited=count >= self.limit,
        )

    async def increment(self, identity: str, *, now: Optional[datetime] = None) -> IncrementResult:
        """Atomic increment-or-initialize of the current bucket."""
        now = now or self._now()
        settings = get_settings()
        doc_id = self._doc_id(identity, now)
        expires_at = now + timedelta(hours=int(settings.RATE_LIMIT_BUCKET_TTL_HOURS))

        try:
            doc = await self._collection().find_one_and_update(
                {"_id": doc_id},
                {
                    "$inc": {"count": 1},
                    "$set": {"expires_at": expires_at, "updated_at": now},
                    "$setOnInsert": {
                        "scope": self.scope,
                        "identity": identity,
                        "hour_key": hour_key(now),
                        "created_at": now,
                    },
                },
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            logger.error(f"Error incrementing rate limit for {self.scope}:{identity}, allowing: {e}")
            return IncrementResult(count=0, is_limited=False)

        count = int((doc or {}).get("count", 1))
        return IncrementResult(count=count, is_limited=count > self.limit)


def guest_limiter() -> HourlyRateLimiter:
    return HourlyRateLimiter("guest", get_settings().GUEST_HOURLY_LIMIT)


def policy_limiter(max_per_hour: int) -> HourlyRateLimiter:
    return HourlyRateLimiter("ip", max_per_hour)
