"""Download job models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DOWNLOADING = "downloading"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = (JobStatus.PENDING, JobStatus.PROCESSING, JobStatus.DOWNLOADING)
TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)
# Completed is deliberately absent: purge never selects user data.
PURGEABLE_STATUSES = (JobStatus.FAILED, JobStatus.CANCELLED)


def status_values(statuses) -> List[str]:
    return [s.value for s in statuses]


# Live statuses only move forward; a terminal status may follow any of them.
STATUS_ORDER = {JobStatus.PENDING: 0, JobStatus.PROCESSING: 1, JobStatus.DOWNLOADING: 2}


def allowed_sources(target: JobStatus) -> Tuple[JobStatus, ...]:
    """Statuses a job may be in for an update to move it to ``target``."""
    if target in TERMINAL_STATUSES:
        return ACTIVE_STATUSES
    return tuple(s for s in ACTIVE_STATUSES if STATUS_ORDER[s] <= STATUS_ORDER[target])


# Records written by the previous system use camelCase, sometimes with the
# even older short names on the left.
LEGACY_FIELDS = {
    "userId": "user_id",
    "userEmail": "user_email",
    "albumId": "album_id",
    "releaseId": "album_id",
    "trackId": "track_id",
    "albumTitle": "album_title",
    "title": "album_title",
    "artistName": "artist_name",
    "artist": "artist_name",
    "artistId": "artist_id",
    "coverUrl": "cover_url",
    "cover": "cover_url",
    "releaseDate": "release_date",
    "tracksCount": "tracks_count",
    "trackCount": "tracks_count",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "fileName": "file_name",
    "fileSize": "file_size",
    "downloadUrl": "download_url",
}

LEGACY_SETTINGS_FIELDS = {
    "quality": "quality",
    "format": "format",
    "bitrate": "bitrate",
    "embedLyrics": "embed_lyrics",
    "lyricsMode": "lyrics_mode",
    "zipName": "zip_name",
    "trackName": "track_name",
    "source": "source",
}


def _to_naive_utc(value: Any) -> Any:
    """Mongo hands back naive UTC datetimes; keep everything comparable with them."""
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class DownloadSettings(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    quality: int = 27
    format: str = "FLAC"
    bitrate: Optional[int] = None
    embed_lyrics: bool = True
    lyrics_mode: str = "embed"
    zip_name: Optional[str] = None
    track_name: Optional[str] = None
    source: Literal["qobuz", "tidal"] = "qobuz"


class Job(BaseModel):
    """Canonical job record, exactly as persisted in the ``jobs`` collection."""

    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: Optional[str] = None
    user_email: Optional[str] = None

    status: JobStatus
    progress: int = 0
    description: str = ""
    error: Optional[str] = None

    album_id: str = ""
    track_id: Optional[str] = None
    album_title: str = ""
    artist_name: str = ""
    artist_id: str = ""
    cover_url: str = ""
    release_date: Optional[str] = None
    tracks_count: int = 0

    settings: DownloadSettings = Field(default_factory=DownloadSettings)
    country: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    file_name: Optional[str] = None
    file_size: Optional[int] = None
    download_url: Optional[str] = None

    ttl: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _adapt_legacy(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        doc = dict(data)
        for old, new in LEGACY_FIELDS.items():
            if old in doc:
                value = doc.pop(old)
                if doc.get(new) in (None, ""):
                    doc[new] = value

        raw_settings = doc.get("settings")
        if isinstance(raw_settings, str):
            raw_settings = None
        settings: Dict[str, Any] = dict(raw_settings or {})
        for old, new in LEGACY_SETTINGS_FIELDS.items():
            if old in doc and new not in settings and old not in settings:
                settings[new] = doc.pop(old)
        doc["settings"] = settings

        if doc.get("track_id") is not None:
            doc["track_id"] = str(doc["track_id"])
        if "updated_at" not in doc and "created_at" in doc:
            doc["updated_at"] = doc["created_at"]
        return doc

    @field_validator("created_at", "updated_at", "ttl", mode="before")
    @classmethod
    def _normalize_times(cls, value: Any) -> Any:
        return _to_naive_utc(value)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Job":
        return cls.model_validate(doc)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="python", exclude_none=True) | {"status": self.status.value}


class JobCreateRequest(BaseModel):
    """
    Body of a download request. The descriptive fields are checked by the
    service so that a missing one surfaces as a validation error with a
    readable message.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    album_id: Optional[str] = None
    track_id: Optional[str] = None
    album_title: Optional[str] = None
    artist_name: Optional[str] = None
    artist_id: Optional[str] = None
    cover_url: Optional[str] = None
    release_date: Optional[str] = None
    tracks_count: Optional[int] = None

    quality: Optional[int] = None
    format: Optional[str] = None
    bitrate: Optional[int] = None
    embed_lyrics: Optional[bool] = None
    lyrics_mode: Optional[str] = None
    zip_name: Optional[str] = None
    track_name: Optional[str] = None
    source: Optional[Literal["qobuz", "tidal"]] = None

    country: Optional[str] = None

    @field_validator("track_id", mode="before")
    @classmethod
    def _track_id_as_str(cls, value: Any) -> Any:
        return None if value is None else str(value)

    def download_settings(self) -> DownloadSettings:
        fields = {
            "quality": self.quality,
            "format": self.format,
            "bitrate": self.bitrate,
            "embed_lyrics": self.embed_lyrics,
            "lyrics_mode": self.lyrics_mode,
            "zip_name": self.zip_name,
            "track_name": self.track_name,
            "source": self.source,
        }
        return DownloadSettings(**{k: v for k, v in fields.items() if v is not None})


class JobCreateResponse(BaseModel):
    id: str
    status: JobStatus
    album_title: str
    artist_name: str
    cover_url: str


class JobStatusResponse(BaseModel):
    id: str
    status: JobStatus
    progress: int
    description: str
    error: Optional[str] = None
    download_url: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    album_title: str
    artist_name: str
    cover_url: str

    @classmethod
    def from_job(cls, job: Job) -> "JobStatusResponse":
        return cls(
            id=job.id,
            status=job.status,
            progress=job.progress,
            description=job.description,
            error=job.error,
            download_url=job.download_url,
            file_name=job.file_name,
            file_size=job.file_size,
            album_title=job.album_title,
            artist_name=job.artist_name,
            cover_url=job.cover_url,
        )


class JobUpdate(BaseModel):
    """Partial update pushed by the processing pipeline."""

    status: Optional[JobStatus] = None
    progress: Optional[int] = Field(default=None, ge=0, le=100)
    description: Optional[str] = None
    error: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = Field(default=None, ge=0)
    download_url: Optional[str] = None

    @model_validator(mode="after")
    def _result_fields_need_completion(self) -> "JobUpdate":
        if self.download_url is not None and self.status != JobStatus.COMPLETED:
            raise ValueError("download_url may only be set together with status 'completed'.")
        if self.error is not None and self.status != JobStatus.FAILED:
            raise ValueError("error may only be set together with status 'failed'.")
        return self

    def fields(self) -> Dict[str, Any]:
        data = self.model_dump(exclude_none=True)
        if "status" in data:
            data["status"] = data["status"].value
        return data


class DownloadItem(BaseModel):
    """One entry of a user's download history."""

    id: str
    file_name: str
    url: str
    album_id: str
    album_title: str
    artist_name: str
    artist_id: str
    cover_url: str
    type: Literal["album", "track"]
    source: str
    file_size: Optional[int] = None
    created_at: datetime

    @classmethod
    def from_job(cls, job: Job) -> "DownloadItem":
        return cls(
            id=job.id,
            file_name=job.file_name or "download",
            url=job.download_url or "",
            album_id=job.album_id,
            album_title=job.album_title,
            artist_name=job.artist_name,
            artist_id=job.artist_id,
            cover_url=job.cover_url,
            type="track" if job.track_id else "album",
            source=job.settings.source,
            file_size=job.file_size,
            created_at=job.created_at,
        )


class DownloadListResponse(BaseModel):
    items: List[DownloadItem]


class StorageUsageResponse(BaseModel):
    total_bytes: int
    items: int


class CleanupResult(BaseModel):
    marked_failed: int = 0
    deleted_records: int = 0
    deleted_blobs: int = 0
