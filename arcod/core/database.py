"""
MongoDB database connection and utilities.
"""

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from arcod.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


class Database:
    """MongoDB database connection manager."""

    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None

    @classmethod
    async def connect(cls):
        """Connect to MongoDB."""
        cls.client = AsyncIOMotorClient(settings.MONGO_URI)
        cls.db = cls.client[settings.MONGO_DB_NAME]

        await cls.create_indexes()

        logger.info(f"Connected to MongoDB: {settings.MONGO_DB_NAME}")

    @classmethod
    async def disconnect(cls):
        """Disconnect from MongoDB."""
        if cls.client:
            cls.client.close()
            logger.info("Disconnected from MongoDB")

    @classmethod
    async def create_indexes(cls):
        """Create indexes backing the job queries and the TTL evictions."""
        jobs = cls.db.jobs
        await jobs.create_index("id", unique=True)
        # Sweep queries: status + age.
        await jobs.create_index([("status", ASCENDING), ("updated_at", ASCENDING)])
        await jobs.create_index([("status", ASCENDING), ("created_at", ASCENDING)])
        # History lookups by owner.
        await jobs.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
        await jobs.create_index([("user_email", ASCENDING), ("created_at", DESCENDING)])
        await jobs.create_index("ttl", expireAfterSeconds=0)

        await cls.db.rate_limits.create_index("expires_at", expireAfterSeconds=0)
        await cls.db.rate_limit_policies.create_index("ip", unique=True)
        await cls.db.blocked_ips.create_index("ip", unique=True)

    @classmethod
    def get_collection(cls, name: str):
        """Get a collection by name."""
        return cls.db[name]


def get_db() -> AsyncIOMotorDatabase:
    """Get the database instance."""
    return Database.db
