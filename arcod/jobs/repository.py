"""Mongo-backed Job Store.

The core keeps no job state in memory: every read and every transition goes
through here. Transitions are conditional on the statuses the caller expects,
so a watchdog write can never revive a job the pipeline already finished.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from arcod.core.database import Database
from arcod.jobs.models import (
    ACTIVE_STATUSES,
    PURGEABLE_STATUSES,
    Job,
    JobStatus,
    status_values,
)

logger = logging.getLogger(__name__)


def _now() -> datetime:
    # Naive UTC, the form Mongo returns.
    return datetime.utcnow()


class JobRepository:
    @staticmethod
    def _collection():
        return Database.get_collection("jobs")

    @classmethod
    async def put(cls, job: Job) -> None:
        await cls._collection().insert_one(job.to_document())

    @classmethod
    async def get(cls, job_id: str) -> Optional[Job]:
        doc = await cls._collection().find_one({"id": job_id}, {"_id": 0})
        return Job.from_document(doc) if doc else None

    @classmethod
    async def merge_update(
        cls,
        job_id: str,
        fields: Dict[str, Any],
        *,
        expected_statuses: Iterable[JobStatus] = ACTIVE_STATUSES,
        extra_filter: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Set the given non-None fields and bump ``updated_at``.

        Applies only while the record's status is one of ``expected_statuses``;
        returns whether a record matched. An empty update touches nothing.
        """
        values = {k: v for k, v in fields.items() if v is not None and k not in ("id", "_id")}
        if not values:
            return False
        if isinstance(values.get("status"), JobStatus):
            values["status"] = values["status"].value

        update: Dict[str, Any] = {"$set": {**values, "updated_at": _now()}}
        if values.get("status") == JobStatus.COMPLETED.value:
            update["$unset"] = {"ttl": ""}

        query: Dict[str, Any] = {"id": job_id, "status": {"$in": status_values(expected_statuses)}}
        if extra_filter:
            query.update(extra_filter)

        result = await cls._collection().update_one(query, update)
        return result.matched_count > 0

    @classmethod
    async def query_stale(
        cls,
        statuses: Iterable[JobStatus],
        cutoff: datetime,
        *,
        field: str = "updated_at",
    ) -> List[Dict[str, Any]]:
        """
        Raw documents in ``statuses`` whose ``field`` is older than ``cutoff``.

        Left unparsed so the sweep can convert and skip records one at a time.
        """
        cursor = cls._collection().find(
            {"status": {"$in": status_values(statuses)}, field: {"$lt": cutoff}},
            {"_id": 0},
        )
        return await cursor.to_list(length=None)

    @classmethod
    async def query_purgeable(cls, cutoff: datetime) -> List[Dict[str, Any]]:
        """Raw failed/cancelled documents last touched before ``cutoff``."""
        cursor = cls._collection().find(
            {
                "status": {"$in": status_values(PURGEABLE_STATUSES)},
                "updated_at": {"$lt": cutoff},
                "download_url": None,
            },
            {"_id": 0},
        )
        return await cursor.to_list(length=None)

    @classmethod
    async def query_legacy(cls) -> List[Dict[str, Any]]:
        """Documents still in the previous camelCase layout (no ``updated_at``)."""
        cursor = cls._collection().find({"updated_at": {"$exists": False}})
        return await cursor.to_list(length=None)

    @classmethod
    async def canonicalize(cls, doc: Dict[str, Any]) -> bool:
        """
        Rewrite a legacy document in the canonical layout, in place.

        Raises ``ValidationError`` when the document cannot be adapted. Returns
        whether the document was still legacy when written.
        """
        job = Job.from_document(doc)
        result = await cls._collection().replace_one(
            {"_id": doc["_id"], "updated_at": {"$exists": False}},
            job.to_document(),
        )
        return result.modified_count > 0

    @classmethod
    async def count_active(cls) -> int:
        return await cls._collection().count_documents(
            {"status": {"$in": status_values(ACTIVE_STATUSES)}}
        )

    @classmethod
    async def query_by_owner(cls, user_id: str, email: Optional[str]) -> List[Job]:
        """Every record owned by ``user_id`` or ``email``, legacy field names included."""
        owners: List[Dict[str, Any]] = [{"user_id": user_id}, {"userId": user_id}]
        if email:
            owners += [{"user_email": email}, {"userEmail": email}]
        cursor = cls._collection().find({"$or": owners}, {"_id": 0})
        jobs: List[Job] = []
        for doc in await cursor.to_list(length=None):
            try:
                jobs.append(Job.from_document(doc))
            except ValidationError as e:
                logger.warning(f"[{doc.get('id')}] Skipping unreadable job record: {e.error_count()} errors")
        return jobs

    @classmethod
    async def delete(cls, job_id: str, *, statuses: Optional[Iterable[JobStatus]] = None) -> bool:
        query: Dict[str, Any] = {"id": job_id}
        if statuses is not None:
            query["status"] = {"$in": status_values(statuses)}
        result = await cls._collection().delete_one(query)
        return result.deleted_count > 0
