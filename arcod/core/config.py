"""
Application configuration using Pydantic Settings.
Loads from environment variables / .env file.
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "Arcod Downloads API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # MongoDB
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB_NAME: str = "arcod"

    # AWS / S3
    AWS_REGION: str = "eu-north-1"
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_S3_BUCKET: str = ""
    S3_DOWNLOADS_PREFIX: str = "downloads/"

    # JWT (identity verification)
    JWT_SECRET_KEY: str = "your-super-secret-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_JWKS_URL: str = ""  # e.g. Cognito: https://cognito-idp.<region>.amazonaws.com/<pool>/.well-known/jwks.json
    JWT_AUDIENCE: str = ""

    # Admin
    ADMIN_API_KEY: str = ""

    # Guests
    ALLOW_GUEST_DOWNLOADS: bool = True
    GUEST_EMAIL_DOMAIN: str = "guest.arcod.app"
    GUEST_HOURLY_LIMIT: int = 50
    RATE_LIMIT_BUCKET_TTL_HOURS: int = 2

    # Scripted clients refused at job creation (case-insensitive substring match)
    BLOCKED_USER_AGENTS: List[str] = ["java", "python", "curl", "wget", "httpie", "postman"]

    # Admission
    MAX_ACTIVE_JOBS: int = 10
    CAPACITY_RETRY_AFTER_SECONDS: int = 60

    # Watchdog / cleanup
    PENDING_TIMEOUT_SECONDS: int = 180
    STUCK_JOB_MINUTES: int = 10
    JOB_RECORD_RETENTION_HOURS: int = 24
    JOB_SCAFFOLD_TTL_HOURS: int = 48
    CLEANUP_INTERVAL_MINUTES: int = 15

    # History
    DOWNLOAD_HISTORY_LIMIT: int = 100

    # Processing pipeline trigger (empty disables dispatch)
    PIPELINE_TASK_NAME: str = ""

    # Celery
    CELERY_BROKER_URL: str = "sqs://"
    CELERY_QUEUE_PREFIX: str = "arcod-"
    CELERY_VISIBILITY_TIMEOUT: int = 3600
    CELERY_POLLING_INTERVAL: float = 1.0
    CELERY_WAIT_TIME_SECONDS: int = 10
    CELERY_TASK_TIME_LIMIT: int = 0
    CELERY_TASK_SOFT_TIME_LIMIT: int = 0
    SQS_DEFAULT_QUEUE_URL: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
