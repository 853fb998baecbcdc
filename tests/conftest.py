"""
Arcod - Test Configuration and Fixtures
"""
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

# Set testing environment before any arcod import reads settings.
os.environ["MONGO_DB_NAME"] = "arcod_test"
os.environ["AWS_REGION"] = "us-east-1"
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["AWS_S3_BUCKET"] = "arcod-test-downloads"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key-for-testing"
os.environ["JWT_JWKS_URL"] = ""
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["PIPELINE_TASK_NAME"] = ""
os.environ["CELERY_BROKER_URL"] = "memory://"

import boto3
import jwt
import pytest
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient
from moto import mock_aws

from arcod.access.rate_limit import HourlyRateLimiter
from arcod.core.aws import S3Service
from arcod.core.database import Database

BUCKET = "arcod-test-downloads"
JWT_SECRET = "test-jwt-secret-key-for-testing"
ADMIN_KEY = "test-admin-key"
FROZEN_NOW = datetime(2026, 2, 3, 17, 20, tzinfo=timezone.utc)
BROWSER_UA = "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_4) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.4 Safari/605.1.15"


def utcnow() -> datetime:
    # Mongo keeps millisecond precision; whole seconds compare equal after a round trip.
    return datetime.utcnow().replace(microsecond=0)


def make_token(sub: str = "user-1", email: Optional[str] = "owner@example.com", **claims) -> str:
    payload: Dict[str, Any] = {"sub": sub, "exp": datetime.now(timezone.utc) + timedelta(hours=1)}
    if email:
        payload["email"] = email
    payload.update(claims)
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


def job_doc(job_id: str = "job-1", **overrides) -> Dict[str, Any]:
    now = utcnow()
    doc: Dict[str, Any] = {
        "id": job_id,
        "user_id": "user-1",
        "user_email": "owner@example.com",
        "status": "pending",
        "progress": 0,
        "description": "Queued...",
        "album_id": "alb-1",
        "album_title": "Kind of Blue",
        "artist_name": "Miles Davis",
        "artist_id": "art-1",
        "cover_url": "https://img.example.com/kob.jpg",
        "tracks_count": 5,
        "settings": {"quality": 27, "format": "FLAC", "embed_lyrics": True, "lyrics_mode": "embed", "source": "qobuz"},
        "created_at": now,
        "updated_at": now,
    }
    doc.update(overrides)
    return doc


@pytest.fixture
def mongo_db():
    """Fresh in-memory database wired into Database for each test."""
    client = AsyncMongoMockClient()
    Database.client = client
    Database.db = client["arcod_test"]
    yield Database.db
    Database.client = None
    Database.db = None


@pytest.fixture
def s3():
    """Mocked S3 with an empty downloads bucket."""
    with mock_aws():
        S3Service.reset()
        client = boto3.client("s3", region_name="us-east-1")
        client.create_bucket(Bucket=BUCKET)
        yield client
        S3Service.reset()


@pytest.fixture
def put_blobs(s3):
    def _put(job_id: str, count: int = 2):
        keys = [f"downloads/{job_id}/file-{i}.flac" for i in range(count)]
        for key in keys:
            s3.put_object(Bucket=BUCKET, Key=key, Body=b"audio")
        return keys
    return _put


@pytest.fixture
def list_blobs(s3):
    def _list(prefix: str = "downloads/"):
        response = s3.list_objects_v2(Bucket=BUCKET, Prefix=prefix)
        return [obj["Key"] for obj in response.get("Contents", [])]
    return _list


@pytest.fixture
def frozen_hour(monkeypatch):
    """Pin the rate limiter clock inside a single hour bucket."""
    monkeypatch.setattr(HourlyRateLimiter, "_now", staticmethod(lambda: FROZEN_NOW))
    return FROZEN_NOW


@pytest.fixture
async def client(mongo_db, s3):
    """API client over the ASGI app (lifespan not run; Database is pre-wired)."""
    from arcod.main import app

    transport = ASGITransport(app=app)
    # Job creation refuses scripted user agents such as httpx's default.
    headers = {"User-Agent": BROWSER_UA}
    async with AsyncClient(transport=transport, base_url="http://test", headers=headers) as ac:
        yield ac


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def admin_headers():
    return {"X-ADMIN-API-KEY": ADMIN_KEY}
