"""Admission control: block list, scripted-client filter, capacity ceiling and hourly quotas.

Ordering for a creation request is block list, user-agent filter, capacity,
quota check, quota increment. The check and the increment are two store calls, so concurrent
requests can each pass the check before either increments; over-admission is
bounded by the number of requests in flight.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from arcod.access.policies import AccessPolicyService
from arcod.access.rate_limit import HourlyRateLimiter, guest_limiter, policy_limiter
from arcod.auth.models import Caller
from arcod.core.config import get_settings
from arcod.core.exceptions import (
    CapacityExceededException,
    ForbiddenException,
    QuotaExceededException,
)
from arcod.jobs.repository import JobRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdmissionDecision:
    allowed: bool
    retry_after_seconds: int = 0


def admit_job(active_count: int, limit: int, retry_after_seconds: int = 60) -> AdmissionDecision:
    """Reject once the number of active jobs reaches ``limit``."""
    if active_count >= limit:
        return AdmissionDecision(allowed=False, retry_after_seconds=retry_after_seconds)
    return AdmissionDecision(allowed=True)


def is_blocked_user_agent(user_agent: str) -> bool:
    agent = (user_agent or "").lower()
    return any(token.lower() in agent for token in get_settings().BLOCKED_USER_AGENTS if token)


class AdmissionController:
    @classmethod
    async def check_capacity(cls) -> None:
        settings = get_settings()
        # Live count on every admission; there is no cached counter to drift.
        active = await JobRepository.count_active()
        decision = admit_job(active, settings.MAX_ACTIVE_JOBS, settings.CAPACITY_RETRY_AFTER_SECONDS)
        if not decision.allowed:
            logger.warning(f"Capacity reached: {active}/{settings.MAX_ACTIVE_JOBS} active jobs")
            raise CapacityExceededException(retry_after=decision.retry_after_seconds)

    @classmethod
    async def admit(cls, caller: Caller) -> None:
        """Raise if ``caller`` may not create a job right now; charge its quota otherwise."""
        if await AccessPolicyService.is_blocked(caller.ip):
            logger.warning(f"Blocked IP attempted a download: {caller.ip}")
            raise ForbiddenException("Forbidden")

        if is_blocked_user_agent(caller.user_agent):
            logger.warning(f"Blocked bot user-agent from {caller.ip}: {caller.user_agent[:50]}")
            raise ForbiddenException("Forbidden")

        await cls.check_capacity()

        if caller.is_guest:
            limiter = guest_limiter()
            await cls._charge(
                limiter,
                caller.ip,
                f"You have reached the limit of {limiter.limit} downloads per hour. "
                "Create a free account for unlimited access!",
            )
            return

        policy = await AccessPolicyService.get_policy(caller.ip)
        if policy and policy.max_per_hour > 0:
            await cls._charge(
                policy_limiter(policy.max_per_hour),
                caller.ip,
                f"Limit reached ({policy.max_per_hour}/hour) for this address.",
            )

    @staticmethod
    async def _charge(limiter: HourlyRateLimiter, identity: str, message: str) -> None:
        status = await limiter.get_status(identity)
        if status.is_limited:
            logger.info(f"[Rate limit] {limiter.scope}:{identity} at {status.count}/{status.limit}")
            raise QuotaExceededException(
                message,
                limit=status.limit,
                remaining=0,
                resets_at=status.resets_at.isoformat(),
            )

        result = await limiter.increment(identity)
        logger.info(f"[Rate limit] {limiter.scope}:{identity} now {result.count}/{limiter.limit}")
