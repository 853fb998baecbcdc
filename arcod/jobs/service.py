"""Download job lifecycle: creation, status reads, cancellation, deletion, pipeline updates."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timedelta
from typing import List

from botocore.exceptions import BotoCoreError, ClientError

from arcod.access.admission import AdmissionController
from arcod.auth.models import Caller
from arcod.core.aws import S3Service, job_prefix
from arcod.core.config import get_settings
from arcod.core.exceptions import (
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
    ValidationException,
)
from arcod.jobs.models import (
    ACTIVE_STATUSES,
    DownloadItem,
    Job,
    JobCreateRequest,
    JobCreateResponse,
    JobStatus,
    JobUpdate,
    StorageUsageResponse,
    allowed_sources,
)
from arcod.jobs.repository import JobRepository

settings = get_settings()
logger = logging.getLogger(__name__)

QUEUED_DESCRIPTION = "Queued..."
CANCELLED_DESCRIPTION = "Cancelled by user"
PENDING_TIMEOUT_DESCRIPTION = "Job timed out (processing never started). Please try again."
PENDING_TIMEOUT_ERROR = (
    "Processing was never triggered. This is usually a temporary issue, please retry."
)


def _now() -> datetime:
    return datetime.utcnow()


def _validate_create_request(request: JobCreateRequest) -> None:
    missing = [
        name
        for name in ("album_id", "album_title", "artist_name")
        if not (getattr(request, name) or "").strip()
    ]
    if missing:
        raise ValidationException(f"Missing required fields: {', '.join(missing)}")


def is_owner(job: Job, actor: dict) -> bool:
    if job.user_id and job.user_id == actor.get("id"):
        return True
    email = actor.get("email")
    return bool(email) and job.user_email == email


async def delete_job_blobs(job_id: str) -> int:
    """
    Remove everything under the job's storage prefix. Failures are logged and
    reported as zero deletions; they never stop record deletion.
    """
    prefix = job_prefix(job_id)
    try:
        return await asyncio.to_thread(S3Service().delete_prefix, prefix)
    except (ClientError, BotoCoreError, ValueError) as e:
        logger.error(f"[{job_id}] S3 deletion error (non-fatal): {e}")
        return 0


class JobsService:
    @classmethod
    async def create_job(cls, caller: Caller, request: JobCreateRequest) -> JobCreateResponse:
        _validate_create_request(request)
        await AdmissionController.admit(caller)

        now = _now()
        job = Job(
            id=str(uuid.uuid4()),
            user_id=caller.user_id,
            user_email=caller.email,
            status=JobStatus.PENDING,
            progress=0,
            description=QUEUED_DESCRIPTION,
            album_id=request.album_id.strip(),
            track_id=request.track_id,
            album_title=request.album_title.strip(),
            artist_name=request.artist_name.strip(),
            artist_id=request.artist_id or "",
            cover_url=request.cover_url or "",
            release_date=request.release_date,
            tracks_count=request.tracks_count or 0,
            settings=request.download_settings(),
            country=request.country,
            created_at=now,
            updated_at=now,
            ttl=now + timedelta(hours=settings.JOB_SCAFFOLD_TTL_HOURS),
        )
        await JobRepository.put(job)

        logger.info(
            f"[{job.id}] Created download job for {caller.user_id}: "
            f"{job.artist_name} - {job.album_title}"
        )
        cls._trigger_pipeline(job.id)

        return JobCreateResponse(
            id=job.id,
            status=job.status,
            album_title=job.album_title,
            artist_name=job.artist_name,
            cover_url=job.cover_url,
        )

    @staticmethod
    def _trigger_pipeline(job_id: str) -> None:
        """Fire-and-forget hand-off to the processing worker."""
        task_name = (settings.PIPELINE_TASK_NAME or "").strip()
        if not task_name:
            logger.debug(f"[{job_id}] No pipeline task configured; job stays pending")
            return
        try:
            from arcod.worker.celery_app import celery_app, DEFAULT_QUEUE

            celery_app.send_task(task_name, args=[job_id], queue=DEFAULT_QUEUE)
        except Exception as e:
            # The pending watchdog fails the job if nothing ever picks it up.
            logger.error(f"[{job_id}] Failed to dispatch {task_name}: {type(e).__name__}: {e}")

    @classmethod
    async def get_job(cls, job_id: str) -> Job:
        job = await JobRepository.get(job_id)
        if not job:
            raise NotFoundException("Job not found")
        return await cls.heal_pending(job)

    @classmethod
    async def heal_pending(cls, job: Job) -> Job:
        """
        A job still ``pending`` past the timeout was never picked up by the
        pipeline. Fail it so pollers stop waiting.
        """
        if job.status != JobStatus.PENDING:
            return job
        age = _now() - job.created_at
        if age <= timedelta(seconds=settings.PENDING_TIMEOUT_SECONDS):
            return job

        logger.warning(f"[{job.id}] Job stuck in pending for {int(age.total_seconds())}s, auto-failing")
        await JobRepository.merge_update(
            job.id,
            {
                "status": JobStatus.FAILED,
                "description": PENDING_TIMEOUT_DESCRIPTION,
                "error": PENDING_TIMEOUT_ERROR,
            },
            expected_statuses=(JobStatus.PENDING,),
        )
        # Re-read: the pipeline may have claimed the job in between.
        return await JobRepository.get(job.id) or job

    @classmethod
    async def cancel_job(cls, job_id: str) -> None:
        job = await JobRepository.get(job_id)
        if not job:
            raise NotFoundException("Job not found")
        if job.is_terminal:
            raise InvalidTransitionException("Cannot cancel finished job")

        cancelled = await JobRepository.merge_update(
            job_id,
            {"status": JobStatus.CANCELLED, "description": CANCELLED_DESCRIPTION},
            expected_statuses=ACTIVE_STATUSES,
        )
        if not cancelled:
            raise InvalidTransitionException("Cannot cancel finished job")
        logger.info(f"[{job_id}] Cancelled")

    @classmethod
    async def delete_job(cls, job_id: str, actor: dict) -> int:
        """Delete a job's files and record. Returns the number of files removed."""
        job = await JobRepository.get(job_id)
        if not job:
            raise NotFoundException("Download not found")
        if not is_owner(job, actor):
            raise ForbiddenException("Access denied")

        deleted_files = await delete_job_blobs(job_id)
        await JobRepository.delete(job_id)

        logger.info(f"[{job_id}] Download deleted by {actor.get('email') or actor.get('id')} ({deleted_files} files)")
        return deleted_files

    @classmethod
    async def update_job(cls, job_id: str, update: JobUpdate) -> bool:
        """
        Merge pipeline progress into a live job. Updates aimed at a terminal
        (or missing) job, or moving a job back along
        pending -> processing -> downloading, are ignored and reported as ``False``.
        """
        fields = update.fields()
        if not fields:
            return False

        expected = allowed_sources(update.status) if update.status else ACTIVE_STATUSES
        applied = await JobRepository.merge_update(job_id, fields, expected_statuses=expected)
        if not applied:
            logger.info(f"[{job_id}] Ignored update on finished, missing or further advanced job: {sorted(fields)}")
        return applied

    @classmethod
    async def _completed_downloads(cls, actor: dict) -> List[DownloadItem]:
        jobs = await JobRepository.query_by_owner(actor["id"], actor.get("email"))
        seen = set()
        items: List[DownloadItem] = []
        for job in sorted(jobs, key=lambda j: j.created_at, reverse=True):
            if job.status != JobStatus.COMPLETED or not job.download_url or job.id in seen:
                continue
            seen.add(job.id)
            items.append(DownloadItem.from_job(job))
        return items

    @classmethod
    async def list_downloads(cls, actor: dict) -> List[DownloadItem]:
        """Completed downloads owned by the actor, newest first."""
        items = await cls._completed_downloads(actor)
        return items[: settings.DOWNLOAD_HISTORY_LIMIT]

    @classmethod
    async def storage_usage(cls, actor: dict) -> StorageUsageResponse:
        items = await cls._completed_downloads(actor)
        total = sum(item.file_size for item in items if item.file_size)
        return StorageUsageResponse(total_bytes=total, items=len(items))
