"""AWS S3 Service."""

import logging
import re
from typing import Iterable, List

import boto3
from botocore.exceptions import ClientError

from arcod.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

# DeleteObjects accepts at most 1000 keys per request.
DELETE_BATCH_SIZE = 1000


class S3Service:
    """Handles S3 interactions."""

    _instance = None
    _s3_client = None

    def __new__(cls):
        """Singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            try:
                cls._instance._s3_client = boto3.client(
                    "s3",
                    aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
                    aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
                    region_name=settings.AWS_REGION,
                    config=boto3.session.Config(s3={'addressing_style': 'path'})
                )
            except Exception as e:
                logger.error(f"Failed to initialize S3 client: {e}")
                cls._instance._s3_client = None
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the cached client (settings changed, tests)."""
        cls._instance = None

    @property
    def client(self):
        """Get S3 client."""
        return self._s3_client

    @staticmethod
    def _validated_bucket_name() -> str:
        bucket = (settings.AWS_S3_BUCKET or "").strip()
        # Prevent boto3 raising a cryptic "Invalid bucket name" error when env is misconfigured.
        if not bucket:
            raise ValueError("AWS_S3_BUCKET is not configured.")
        # https://docs.aws.amazon.com/AmazonS3/latest/userguide/bucketnamingrules.html
        if not re.fullmatch(r"[a-z0-9][a-z0-9.-]{1,61}[a-z0-9]", bucket):
            raise ValueError(f"Invalid AWS_S3_BUCKET value '{bucket}'.")
        return bucket

    def _require_client(self):
        if not self.client:
            raise ValueError("AWS S3 credentials not configured.")
        return self.client

    def list_keys(self, prefix: str) -> List[str]:
        """List every object key under ``prefix`` (follows continuation tokens)."""
        client = self._require_client()
        bucket = self._validated_bucket_name()
        keys: List[str] = []
        paginator = client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
            for obj in page.get("Contents") or []:
                if obj.get("Key"):
                    keys.append(obj["Key"])
        return keys

    def delete_keys(self, keys: Iterable[str]) -> int:
        """Bulk delete. Returns how many objects S3 reports as deleted."""
        client = self._require_client()
        bucket = self._validated_bucket_name()
        keys = list(keys)
        deleted = 0
        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[start:start + DELETE_BATCH_SIZE]
            response = client.delete_objects(
                Bucket=bucket,
                Delete={"Objects": [{"Key": k} for k in batch], "Quiet": False},
            )
            deleted += len(response.get("Deleted") or [])
            for err in response.get("Errors") or []:
                logger.error(f"Failed to delete s3://{bucket}/{err.get('Key')}: {err.get('Code')} {err.get('Message')}")
        return deleted

    def delete_prefix(self, prefix: str) -> int:
        """
        Delete every object under ``prefix``.

        Deleting an already-empty prefix is a no-op returning 0, so concurrent
        callers racing on the same prefix are harmless.
        """
        if not prefix or not prefix.endswith("/"):
            raise ValueError(f"Refusing to delete non-folder prefix '{prefix}'.")
        try:
            keys = self.list_keys(prefix)
            if not keys:
                return 0
            return self.delete_keys(keys)
        except ClientError as e:
            logger.error(f"Error deleting S3 prefix {prefix}: {e}")
            raise


def job_prefix(job_id: str) -> str:
    """Storage prefix owned by a single job."""
    return f"{settings.S3_DOWNLOADS_PREFIX}{job_id}/"
