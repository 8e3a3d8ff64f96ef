"""
MongoDB database connection and utilities
"""
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase, AsyncIOMotorCollection
from typing import Optional
import logging

from .config import settings

logger = logging.getLogger(__name__)


class MongoDB:
    """MongoDB connection manager"""

    def __init__(self):
        self.client: Optional[AsyncIOMotorClient] = None
        self.db: Optional[AsyncIOMotorDatabase] = None
        self.trades_collection: Optional[AsyncIOMotorCollection] = None
        self.ratings_summary_collection: Optional[AsyncIOMotorCollection] = None
        self.reviews_collection: Optional[AsyncIOMotorCollection] = None
        self.legacy_ratings_collection: Optional[AsyncIOMotorCollection] = None

    async def connect(self):
        """Connect to MongoDB"""
        try:
            self.client = AsyncIOMotorClient(settings.MONGODB_URL)
            self.db = self.client[settings.MONGODB_DATABASE]
            self.trades_collection = self.db[settings.MONGODB_TRADES_COLLECTION]
            self.ratings_summary_collection = self.db[settings.MONGODB_RATINGS_SUMMARY_COLLECTION]
            self.reviews_collection = self.db[settings.MONGODB_REVIEWS_COLLECTION]
            self.legacy_ratings_collection = self.db[settings.MONGODB_LEGACY_RATINGS_COLLECTION]

            await self.create_indexes()

            logger.info(
                f"Connected to MongoDB at {settings.MONGODB_URL}, "
                f"database '{settings.MONGODB_DATABASE}'"
            )
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def disconnect(self):
        """Disconnect from MongoDB"""
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    async def create_indexes(self):
        """Create database indexes for the feed queries"""
        trades = self.trades_collection

        # Normal feed, newest first
        await trades.create_index([("is_featured", 1), ("timestamp", -1), ("_id", -1)])

        # Status-filtered normal feed
        await trades.create_index(
            [("is_featured", 1), ("status", 1), ("timestamp", -1), ("_id", -1)]
        )

        # Featured feed, latest expiry first
        await trades.create_index([("is_featured", 1), ("featured_until", -1)])

        # Per-trader featured quota and "my trades"
        await trades.create_index([("trader_id", 1), ("is_featured", 1), ("featured_until", -1)])
        await trades.create_index([("trader_id", 1), ("timestamp", -1)])

        # Token search on each side
        await trades.create_index([("has_item_tokens", 1), ("timestamp", -1), ("_id", -1)])
        await trades.create_index([("wants_item_tokens", 1), ("timestamp", -1), ("_id", -1)])

        # Reviews addressed to a user
        await self.reviews_collection.create_index("to_user_id")

        logger.info("MongoDB indexes created")


# Global MongoDB instance
mongodb = MongoDB()
