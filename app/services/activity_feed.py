"""Append-only activity feed storage."""

import logging
from typing import List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.models import ActivityFeedEntry

logger = logging.getLogger(__name__)

DEFAULT_FEED_LIMIT = 20


class ActivityFeedService:
    """Service class for the activity_feed collection."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self.collection = db["activity_feed"]

    async def create_entry(self, entry: ActivityFeedEntry) -> Optional[ActivityFeedEntry]:
        """
        Append one commit to the feed.

        A commit already recorded for the same user is not duplicated.

        Returns:
            The stored entry, or None if the write failed
        """
        try:
            existing = await self.collection.find_one({"user_id": entry.user_id, "commit_sha": entry.commit_sha})
            if existing:
                return ActivityFeedEntry(**existing)
            await self.collection.insert_one(entry.model_dump(by_alias=True))
        except PyMongoError as pe:
            logger.error(f"Database error in create_entry: {pe}")
            return None

        return entry

    async def get_feed_by_user(self, user_id: ObjectId, limit: int = DEFAULT_FEED_LIMIT) -> List[ActivityFeedEntry]:
        """Feed entries of a user ordered by commit date, newest first."""
        try:
            entries = (
                await self.collection.find({"user_id": ObjectId(user_id)})
                .sort("commit_date", -1)
                .limit(limit)
                .to_list(length=limit)
            )
        except PyMongoError as pe:
            logger.error(f"Database error in get_feed_by_user: {pe}")
            return []

        return [ActivityFeedEntry(**entry) for entry in entries]
