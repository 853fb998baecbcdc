"""
Unit Tests for Admission Control
Tests for: capacity ceiling, guest quota, address policies, block list
"""
import pytest

from arcod.access.admission import AdmissionController, admit_job, is_blocked_user_agent
from arcod.access.policies import AccessPolicyService
from arcod.access.rate_limit import guest_limiter, policy_limiter
from arcod.auth.models import Caller, guest_caller
from arcod.core.exceptions import (
    CapacityExceededException,
    ForbiddenException,
    QuotaExceededException,
)

from conftest import job_doc

GUEST = guest_caller("9.9.9.9", "guest.arcod.app")
MEMBER = Caller(user_id="user-1", email="owner@example.com", ip="8.8.8.8")


async def _seed_active(mongo_db, count, status="processing"):
    for i in range(count):
        await mongo_db.jobs.insert_one(job_doc(f"active-{status}-{i}", status=status))


class TestAdmitJob:
    """Test the pure capacity decision"""

    def test_allows_below_limit(self):
        assert admit_job(9, 10).allowed is True

    def test_rejects_at_limit_with_retry_hint(self):
        decision = admit_job(10, 10, retry_after_seconds=60)

        assert decision.allowed is False
        assert decision.retry_after_seconds == 60

    def test_rejects_above_limit(self):
        assert admit_job(11, 10).allowed is False


class TestCapacity:
    """Test the live active-job count"""

    @pytest.mark.asyncio
    async def test_rejects_when_ten_jobs_active(self, mongo_db):
        await _seed_active(mongo_db, 4, "pending")
        await _seed_active(mongo_db, 3, "processing")
        await _seed_active(mongo_db, 3, "downloading")

        with pytest.raises(CapacityExceededException) as exc:
            await AdmissionController.check_capacity()

        assert exc.value.status_code == 503
        assert exc.value.extra == {"retry_after": 60}
        assert exc.value.headers["Retry-After"] == "60"

    @pytest.mark.asyncio
    async def test_finished_jobs_do_not_count(self, mongo_db):
        await _seed_active(mongo_db, 9, "processing")
        await _seed_active(mongo_db, 5, "completed")
        await _seed_active(mongo_db, 5, "failed")
        await _seed_active(mongo_db, 5, "cancelled")

        await AdmissionController.check_capacity()

    @pytest.mark.asyncio
    async def test_capacity_rejection_does_not_charge_guest_quota(self, mongo_db, frozen_hour):
        await _seed_active(mongo_db, 10)

        with pytest.raises(CapacityExceededException):
            await AdmissionController.admit(GUEST)

        assert (await guest_limiter().get_status(GUEST.ip)).count == 0


class TestGuestQuota:
    """Test the hourly guest quota"""

    @pytest.mark.asyncio
    async def test_forty_ninth_then_fiftieth_download(self, mongo_db, frozen_hour):
        limiter = guest_limiter()
        for _ in range(49):
            await limiter.increment(GUEST.ip)

        await AdmissionController.admit(GUEST)
        assert (await limiter.get_status(GUEST.ip)).count == 50

        with pytest.raises(QuotaExceededException) as exc:
            await AdmissionController.admit(GUEST)

        assert exc.value.status_code == 429
        assert exc.value.extra["limit"] == 50
        assert exc.value.extra["remaining"] == 0
        assert exc.value.extra["resets_at"] == "2026-02-03T18:00:00+00:00"
        assert exc.value.headers["X-RateLimit-Remaining"] == "0"
        # A rejected request is not counted.
        assert (await limiter.get_status(GUEST.ip)).count == 50

    @pytest.mark.asyncio
    async def test_guests_ignore_address_policies(self, mongo_db, frozen_hour):
        await AccessPolicyService.set_policy(GUEST.ip, 1)

        await AdmissionController.admit(GUEST)
        await AdmissionController.admit(GUEST)

        assert (await guest_limiter().get_status(GUEST.ip)).count == 2


class TestAuthenticatedPolicies:
    """Test per-address policies for signed-in callers"""

    @pytest.mark.asyncio
    async def test_no_policy_means_no_limit(self, mongo_db, frozen_hour):
        for _ in range(60):
            await AdmissionController.admit(MEMBER)

        assert await mongo_db.rate_limits.count_documents({}) == 0

    @pytest.mark.asyncio
    async def test_policy_limits_address(self, mongo_db, frozen_hour):
        await AccessPolicyService.set_policy(MEMBER.ip, 2, note="abuse report")

        await AdmissionController.admit(MEMBER)
        await AdmissionController.admit(MEMBER)
        with pytest.raises(QuotaExceededException) as exc:
            await AdmissionController.admit(MEMBER)

        assert exc.value.extra["limit"] == 2
        assert (await policy_limiter(2).get_status(MEMBER.ip)).count == 2

    @pytest.mark.asyncio
    async def test_zero_policy_disables_limit(self, mongo_db, frozen_hour):
        await AccessPolicyService.set_policy(MEMBER.ip, 0)

        for _ in range(5):
            await AdmissionController.admit(MEMBER)


class TestBlockList:
    """Test blocked addresses"""

    @pytest.mark.asyncio
    async def test_blocked_address_is_forbidden_before_quota(self, mongo_db, frozen_hour):
        await AccessPolicyService.block(GUEST.ip, reason="scraper")

        with pytest.raises(ForbiddenException):
            await AdmissionController.admit(GUEST)

        assert (await guest_limiter().get_status(GUEST.ip)).count == 0

    @pytest.mark.asyncio
    async def test_unblock(self, mongo_db, frozen_hour):
        await AccessPolicyService.block(MEMBER.ip)
        await AccessPolicyService.unblock(MEMBER.ip)

        await AdmissionController.admit(MEMBER)
        assert await AccessPolicyService.list_blocked() == []


class TestUserAgentFilter:
    """Test refusing scripted clients"""

    @pytest.mark.parametrize(
        "agent",
        ["curl/8.4.0", "python-requests/2.31.0", "Wget/1.21", "PostmanRuntime/7.36", "Java/17.0.2", "HTTPie/3.2.2"],
    )
    def test_scripted_agents_are_matched(self, agent):
        assert is_blocked_user_agent(agent) is True

    @pytest.mark.parametrize("agent", ["", "Mozilla/5.0 (X11; Linux x86_64) Gecko/20100101 Firefox/125.0"])
    def test_browsers_and_blank_agents_pass(self, agent):
        assert is_blocked_user_agent(agent) is False

    @pytest.mark.asyncio
    async def test_scripted_guest_is_forbidden_without_charge(self, mongo_db, frozen_hour):
        bot = guest_caller("4.4.4.4", "guest.arcod.app", user_agent="curl/8.4.0")

        with pytest.raises(ForbiddenException):
            await AdmissionController.admit(bot)

        assert (await guest_limiter().get_status("4.4.4.4")).count == 0

    @pytest.mark.asyncio
    async def test_scripted_member_is_forbidden(self, mongo_db):
        bot = Caller(user_id="user-1", email="owner@example.com", ip="8.8.8.8", user_agent="python-httpx/0.27.0")

        with pytest.raises(ForbiddenException):
            await AdmissionController.admit(bot)
