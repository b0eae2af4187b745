"""
User service for managing user data and operations.

This module provides the UserService class which handles all user-related
database operations: the OAuth upsert, lookups used by the scheduler,
vacation mode and cascading deletion.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from app.core.cache import UserCache
from app.models import UserInDB

logger = logging.getLogger(__name__)

# Users without activity for longer than this are not "active"
ACTIVE_USER_WINDOW_DAYS = 14


def _object_id(value: str) -> ObjectId:
    if not ObjectId.is_valid(value):
        logger.warning(f"Invalid ObjectId format: {value}")
        raise ValueError(f"Invalid ObjectId: {value}")
    return ObjectId(value)


class UserService:
    """
    Service class for user-related database operations.

    When a UserCache is supplied, every write invalidates the cached record
    of the affected user.
    """

    def __init__(self, db: AsyncIOMotorDatabase, cache: Optional[UserCache] = None) -> None:
        """
        Initialize the UserService.

        Args:
            db: AsyncIO Motor database instance
            cache: Optional user cache to invalidate on writes
        """
        self._db = db
        self.collection = db["users"]
        self._cache = cache

    async def _invalidate(self, user_id: str) -> None:
        if self._cache is not None:
            await self._cache.invalidate(user_id)

    async def create_or_update_user(
        self,
        github_user: Dict[str, Any],
        encrypted_token: str,
    ) -> Optional[UserInDB]:
        """
        Create a new user or update an existing user in the database.

        Args:
            github_user: Dictionary containing GitHub user information with keys:
                - id: GitHub user ID (required)
                - login: GitHub username (required)
                - name, avatar_url, email: optional profile fields
            encrypted_token: GitHub OAuth access token, already encrypted

        Returns:
            UserInDB object representing the created or updated user,
            or None if the operation fails

        Raises:
            ValueError: If required fields are missing from github_user
        """
        if "id" not in github_user or "login" not in github_user:
            logger.error("Missing required fields in github_user data")
            raise ValueError("github_user must contain 'id' and 'login' fields")

        now = datetime.now(timezone.utc)
        profile = {
            "github_id": github_user["id"],
            "username": github_user["login"],
            "name": github_user.get("name"),
            "avatar_url": github_user.get("avatar_url"),
            "email": github_user.get("email"),
            "github_access_token": encrypted_token,
            "updated_at": now,
        }

        try:
            user = await self.collection.find_one_and_update(
                {"github_id": github_user["id"]},
                {
                    "$set": profile,
                    "$setOnInsert": {
                        "notification_preference": "email",
                        "telegram_id": None,
                        "on_vacation": False,
                        "vacation_until": None,
                        "is_admin": False,
                        "last_active": now,
                        "created_at": now,
                    },
                },
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as pe:
            logger.error(f"Database error in create_or_update_user: {pe}")
            return None

        await self._invalidate(str(user["_id"]))
        logger.info(f"Stored user from GitHub login: {profile['username']}")
        return UserInDB(**user)

    async def get_user_by_id(self, user_id: str) -> Optional[UserInDB]:
        """
        Retrieve a user by their MongoDB ObjectId.

        Raises:
            ValueError: If user_id is not a valid ObjectId
        """
        oid = _object_id(user_id)
        try:
            user = await self.collection.find_one({"_id": oid})
        except PyMongoError as pe:
            logger.error(f"Database error in get_user_by_id: {pe}")
            return None

        return UserInDB(**user) if user else None

    async def get_user_by_github_id(self, github_id: int) -> Optional[UserInDB]:
        """Retrieve a user by their GitHub user ID."""
        try:
            user = await self.collection.find_one({"github_id": github_id})
        except PyMongoError as pe:
            logger.error(f"Database error in get_user_by_github_id: {pe}")
            return None

        return UserInDB(**user) if user else None

    async def get_users(self) -> List[UserInDB]:
        """All users in creation order."""
        try:
            users = await self.collection.find({}).sort("_id", 1).to_list(length=None)
        except PyMongoError as pe:
            logger.error(f"Database error in get_users: {pe}")
            return []

        return [UserInDB(**user) for user in users]

    async def get_active_users(self, now: Optional[datetime] = None) -> List[UserInDB]:
        """
        Users that are not on vacation and were active recently.

        "Recently" means last_active within ACTIVE_USER_WINDOW_DAYS.
        """
        now = now or datetime.now(timezone.utc)
        threshold = now - timedelta(days=ACTIVE_USER_WINDOW_DAYS)
        try:
            users = await self.collection.find(
                {"on_vacation": {"$ne": True}, "last_active": {"$gt": threshold}}
            ).sort("_id", 1).to_list(length=None)
        except PyMongoError as pe:
            logger.error(f"Database error in get_active_users: {pe}")
            return []

        return [UserInDB(**user) for user in users]

    async def update_user(self, user_id: str, changes: Dict[str, Any]) -> Optional[UserInDB]:
        """
        Apply a partial update to a user.

        Returns:
            The updated user, or None if it does not exist

        Raises:
            ValueError: If user_id is not a valid ObjectId
        """
        oid = _object_id(user_id)
        changes = {**changes, "updated_at": datetime.now(timezone.utc)}

        try:
            user = await self.collection.find_one_and_update(
                {"_id": oid},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as pe:
            logger.error(f"Database error in update_user: {pe}")
            return None

        await self._invalidate(user_id)
        if user is None:
            logger.warning(f"No user found for update: {user_id}")
            return None
        return UserInDB(**user)

    async def set_vacation(
        self,
        user_id: str,
        on_vacation: bool,
        vacation_until: Optional[datetime] = None,
    ) -> Optional[UserInDB]:
        """Enable or disable vacation mode."""
        logger.info(f"Setting vacation for user {user_id}: {on_vacation} until {vacation_until}")
        return await self.update_user(
            user_id,
            {"on_vacation": on_vacation, "vacation_until": vacation_until if on_vacation else None},
        )

    async def end_vacation_if_expired(self, user_id: str, now: Optional[datetime] = None) -> bool:
        """
        Clear an elapsed vacation exactly once.

        The filter only matches while the flag is still set and the end date
        has passed, so concurrent callers cannot both clear it.

        Returns:
            True if this call cleared the vacation
        """
        now = now or datetime.now(timezone.utc)
        oid = _object_id(user_id)

        try:
            result = await self.collection.update_one(
                {"_id": oid, "on_vacation": True, "vacation_until": {"$ne": None, "$lte": now}},
                {"$set": {"on_vacation": False, "vacation_until": None, "updated_at": now}},
            )
        except PyMongoError as pe:
            logger.error(f"Database error in end_vacation_if_expired: {pe}")
            return False

        if result.modified_count > 0:
            await self._invalidate(user_id)
            return True
        return False

    async def delete_user(self, user_id: str) -> bool:
        """
        Delete a user together with everything that belongs to them.

        Returns:
            True if the user existed and was deleted
        """
        oid = _object_id(user_id)

        try:
            for collection in ("repositories", "user_progress", "weekly_stats", "activity_feed"):
                await self._db[collection].delete_many({"user_id": oid})
            result = await self.collection.delete_one({"_id": oid})
        except PyMongoError as pe:
            logger.error(f"Database error in delete_user: {pe}")
            return False

        await self._invalidate(user_id)
        if result.deleted_count == 0:
            logger.warning(f"No user found to delete: {user_id}")
            return False

        logger.info(f"Deleted user {user_id} and related records")
        return True
