"""
Unit Tests for the Hourly Rate Limiter
Tests for: bucket status, atomic increments, hour boundaries, fail-open
"""
import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from arcod.access.rate_limit import HourlyRateLimiter, guest_limiter, hour_key, next_hour

NOW = datetime(2026, 2, 3, 17, 42, 10, tzinfo=timezone.utc)


class TestBuckets:
    """Test bucket key helpers"""

    def test_hour_key(self):
        assert hour_key(NOW) == "2026-02-03T17"

    def test_resets_at_next_hour_boundary(self):
        assert next_hour(NOW) == datetime(2026, 2, 3, 18, 0, tzinfo=timezone.utc)

    def test_guest_limiter_uses_configured_limit(self):
        assert guest_limiter().limit == 50


class TestStatus:
    """Test reading the current bucket"""

    @pytest.mark.asyncio
    async def test_absent_bucket_counts_zero(self, mongo_db):
        status = await HourlyRateLimiter("guest", 50).get_status("1.2.3.4", now=NOW)

        assert status.count == 0
        assert status.remaining == 50
        assert status.is_limited is False
        assert status.resets_at == next_hour(NOW)

    @pytest.mark.asyncio
    async def test_limited_at_the_limit(self, mongo_db):
        limiter = HourlyRateLimiter("guest", 3)
        for _ in range(3):
            await limiter.increment("1.2.3.4", now=NOW)

        status = await limiter.get_status("1.2.3.4", now=NOW)

        assert status.count == 3
        assert status.remaining == 0
        assert status.is_limited is True

    @pytest.mark.asyncio
    async def test_new_hour_starts_a_fresh_bucket(self, mongo_db):
        limiter = HourlyRateLimiter("guest", 3)
        for _ in range(3):
            await limiter.increment("1.2.3.4", now=NOW)

        status = await limiter.get_status("1.2.3.4", now=NOW + timedelta(minutes=20))

        assert status.count == 0
        assert status.is_limited is False

    @pytest.mark.asyncio
    async def test_identities_and_scopes_are_isolated(self, mongo_db):
        await HourlyRateLimiter("guest", 5).increment("1.2.3.4", now=NOW)

        assert (await HourlyRateLimiter("guest", 5).get_status("5.6.7.8", now=NOW)).count == 0
        assert (await HourlyRateLimiter("ip", 5).get_status("1.2.3.4", now=NOW)).count == 0


class TestIncrement:
    """Test the atomic increment"""

    @pytest.mark.asyncio
    async def test_first_increment_initialises_bucket(self, mongo_db):
        result = await HourlyRateLimiter("guest", 50).increment("1.2.3.4", now=NOW)

        assert result.count == 1
        assert result.is_limited is False
        doc = await mongo_db.rate_limits.find_one({"_id": "guest:1.2.3.4#2026-02-03T17"})
        assert doc["count"] == 1
        assert doc["hour_key"] == "2026-02-03T17"
        assert doc["expires_at"].replace(tzinfo=timezone.utc) == NOW + timedelta(hours=2)

    @pytest.mark.asyncio
    async def test_over_limit_reported_after_increment(self, mongo_db):
        limiter = HourlyRateLimiter("guest", 2)
        await limiter.increment("1.2.3.4", now=NOW)
        second = await limiter.increment("1.2.3.4", now=NOW)
        third = await limiter.increment("1.2.3.4", now=NOW)

        assert second.is_limited is False
        assert third.count == 3
        assert third.is_limited is True

    @pytest.mark.asyncio
    async def test_concurrent_increments_are_not_lost(self, mongo_db):
        limiter = HourlyRateLimiter("guest", 100)

        results = await asyncio.gather(*(limiter.increment("1.2.3.4", now=NOW) for _ in range(25)))

        assert sorted(r.count for r in results) == list(range(1, 26))
        assert (await limiter.get_status("1.2.3.4", now=NOW)).count == 25


class TestFailOpen:
    """Test that store errors never block callers"""

    @staticmethod
    def _broken_collection():
        collection = MagicMock()
        collection.find_one = AsyncMock(side_effect=ServerSelectionTimeoutError("store down"))
        collection.find_one_and_update = AsyncMock(side_effect=ServerSelectionTimeoutError("store down"))
        return collection

    @pytest.mark.asyncio
    async def test_status_reads_as_not_limited(self):
        with patch.object(HourlyRateLimiter, "_collection", return_value=self._broken_collection()):
            status = await HourlyRateLimiter("guest", 50).get_status("1.2.3.4", now=NOW)

        assert status.is_limited is False
        assert status.count == 0
        assert status.remaining == 50

    @pytest.mark.asyncio
    async def test_increment_reports_not_limited(self):
        with patch.object(HourlyRateLimiter, "_collection", return_value=self._broken_collection()):
            result = await HourlyRateLimiter("guest", 50).increment("1.2.3.4", now=NOW)

        assert result.is_limited is False
        assert result.count == 0
