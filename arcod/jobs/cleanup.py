"""Watchdog sweep over the Job Store.

Runs from the Celery beat schedule and from the admin endpoint; both call
``CleanupService.run_sweep``. The sweep is idempotent and safe to run
concurrently with itself and with live pipeline updates:

1. Records still in the previous camelCase layout are rewritten in the
   canonical layout, so the age queries below can see them.
2. Non-terminal jobs with no update for ``STUCK_JOB_MINUTES`` are failed.
3. Failed/cancelled records older than ``JOB_RECORD_RETENTION_HOURS`` lose
   their files and then their record. Completed jobs are never selected.

One bad record is logged and skipped; it does not stop the rest of the sweep.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from arcod.core.config import get_settings
from arcod.jobs.models import ACTIVE_STATUSES, PURGEABLE_STATUSES, CleanupResult, Job, JobStatus
from arcod.jobs.repository import JobRepository
from arcod.jobs.service import delete_job_blobs

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.utcnow()


class CleanupService:
    @classmethod
    async def run_sweep(cls, *, now: Optional[datetime] = None) -> CleanupResult:
        settings = get_settings()
        now = now or _now()
        result = CleanupResult()

        await cls._migrate_legacy_records()
        await cls._fail_stuck_jobs(now - timedelta(minutes=settings.STUCK_JOB_MINUTES), result)
        await cls._purge_old_records(now - timedelta(hours=settings.JOB_RECORD_RETENTION_HOURS), result)

        if result.marked_failed:
            logger.info(f"Cleanup: marked {result.marked_failed} stuck jobs as failed")
        if result.deleted_records:
            logger.info(
                f"Cleanup: deleted {result.deleted_records} old failed/cancelled job records "
                f"and {result.deleted_blobs} temp files"
            )
        return result

    @classmethod
    async def _migrate_legacy_records(cls) -> None:
        migrated = 0
        for doc in await JobRepository.query_legacy():
            try:
                if await JobRepository.canonicalize(doc):
                    migrated += 1
            except Exception:
                logger.exception(f"[{doc.get('id') or doc.get('_id')}] Failed to rewrite legacy job record")
        if migrated:
            logger.info(f"Cleanup: rewrote {migrated} legacy job records")

    @classmethod
    async def _fail_stuck_jobs(cls, cutoff: datetime, result: CleanupResult) -> None:
        minutes = get_settings().STUCK_JOB_MINUTES
        for doc in await JobRepository.query_stale(ACTIVE_STATUSES, cutoff):
            try:
                job = Job.from_document(doc)
                # Only if still in the same status and still stale when written.
                marked = await JobRepository.merge_update(
                    job.id,
                    {
                        "status": JobStatus.FAILED,
                        "description": f"Job timed out - no activity for {minutes}+ minutes",
                        "error": "Timeout: Job was stuck without progress",
                    },
                    expected_statuses=(job.status,),
                    extra_filter={"updated_at": {"$lt": cutoff}},
                )
            except Exception:
                logger.exception(f"[{doc.get('id')}] Failed to mark stuck job as failed")
                continue
            if marked:
                logger.warning(
                    f"[{job.id}] Marked stuck job as failed (status: {job.status.value}, "
                    f"last update: {job.updated_at.isoformat()})"
                )
                result.marked_failed += 1

    @classmethod
    async def _purge_old_records(cls, cutoff: datetime, result: CleanupResult) -> None:
        for doc in await JobRepository.query_purgeable(cutoff):
            try:
                # Only the id is needed here, so records the model rejects still go.
                job_id = doc["id"]
                files = await delete_job_blobs(job_id)
                deleted = await JobRepository.delete(job_id, statuses=PURGEABLE_STATUSES)
            except Exception:
                logger.exception(f"[{doc.get('id')}] Failed to purge job record")
                continue
            result.deleted_blobs += files
            if deleted:
                result.deleted_records += 1
                logger.info(f"[{job_id}] Deleted {doc.get('status')} job and {files} temp files")
