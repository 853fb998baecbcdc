"""Celery tasks (sync wrappers around the async services)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict

from arcod.worker.celery_app import celery_app

logger = logging.getLogger(__name__)


def _run_async(coro):
    """Run async function in sync Celery task."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _sweep() -> Dict[str, Any]:
    from arcod.core.database import Database
    from arcod.jobs.cleanup import CleanupService

    await Database.connect()
    try:
        result = await CleanupService.run_sweep()
    finally:
        await Database.disconnect()
    return result.model_dump()


@celery_app.task(name="arcod.worker.tasks.cleanup_jobs", acks_late=True)
def cleanup_jobs() -> Dict[str, Any]:
    """
    Scheduled cleanup sweep.

    Runs every CLEANUP_INTERVAL_MINUTES via Celery Beat; the admin endpoint
    runs the same sweep on demand.

    Returns:
        Dict with marked_failed, deleted_records and deleted_blobs.
    """
    logger.info("Starting scheduled job cleanup")

    try:
        stats = _run_async(_sweep())
        logger.info(f"Job cleanup complete: {stats}")
        return stats

    except Exception as e:
        logger.error(f"Failed to run job cleanup: {e}")
        raise
