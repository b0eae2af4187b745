"""
Progress service for gamification statistics.

This module provides the ProgressService class which accumulates per-user
progress (commits, streaks, experience) and maintains the weekly statistics
rows, including the Viber of the Week flag.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from app.models import ProgressUpdate, UserProgressInDB, WeeklyStatInDB

logger = logging.getLogger(__name__)


class ProgressService:
    """Service class for user_progress and weekly_stats operations."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        """
        Initialize the ProgressService.

        Args:
            db: AsyncIO Motor database instance
        """
        self.progress = db["user_progress"]
        self.weekly_stats = db["weekly_stats"]

    async def get_user_progress(self, user_id: ObjectId) -> Optional[UserProgressInDB]:
        """Progress of a user, or None before their first recorded commit."""
        try:
            progress = await self.progress.find_one({"user_id": ObjectId(user_id)})
        except PyMongoError as pe:
            logger.error(f"Database error in get_user_progress: {pe}")
            return None

        return UserProgressInDB(**progress) if progress else None

    async def update_user_progress_stats(
        self,
        user_id: ObjectId,
        update: ProgressUpdate,
    ) -> Optional[UserProgressInDB]:
        """
        Accumulate progress for a user in a single atomic write.

        - commits and experience are added to the stored totals
        - active_days only ever grows (max of stored and given)
        - current_streak is replaced and longest_streak keeps the maximum
          streak ever observed, so longest_streak >= current_streak holds

        The progress document is created on first use.

        Returns:
            The updated progress, or None if the write failed
        """
        now = datetime.now(timezone.utc)
        increments: Dict[str, int] = {}
        maximums: Dict[str, int] = {}
        assignments: Dict[str, Any] = {"updated_at": now}

        if update.commits:
            increments["total_commits"] = update.commits
        if update.experience:
            increments["experience"] = update.experience
        if update.active_days is not None:
            maximums["active_days"] = update.active_days
        if update.current_streak is not None:
            assignments["current_streak"] = update.current_streak
            maximums["longest_streak"] = update.current_streak
        if update.last_commit_day is not None:
            assignments["last_commit_day"] = update.last_commit_day

        operations: Dict[str, Dict[str, Any]] = {"$set": assignments}
        if increments:
            operations["$inc"] = increments
        if maximums:
            operations["$max"] = maximums

        try:
            progress = await self.progress.find_one_and_update(
                {"user_id": ObjectId(user_id)},
                operations,
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as pe:
            logger.error(f"Database error in update_user_progress_stats: {pe}")
            return None

        logger.debug(f"Updated progress for user {user_id}: {update.model_dump(exclude_none=True)}")
        return UserProgressInDB(**progress)

    async def get_weekly_stats_by_user(self, user_id: ObjectId) -> List[WeeklyStatInDB]:
        """Weekly statistics of a user, most recent week first."""
        try:
            stats = await self.weekly_stats.find({"user_id": ObjectId(user_id)}).sort("week", -1).to_list(length=None)
        except PyMongoError as pe:
            logger.error(f"Database error in get_weekly_stats_by_user: {pe}")
            return []

        return [WeeklyStatInDB(**stat) for stat in stats]

    async def update_weekly_stats(
        self,
        user_id: ObjectId,
        week: str,
        changes: Dict[str, Any],
        increments: Optional[Dict[str, int]] = None,
    ) -> Optional[WeeklyStatInDB]:
        """
        Upsert the statistics row of a user for a week.

        Args:
            user_id: Owner of the row
            week: Week identifier (YYYY-WW)
            changes: Fields to set
            increments: Counters to add to, such as commit_count

        Returns:
            The stored row, or None if the write failed
        """
        operations: Dict[str, Dict[str, Any]] = {}
        if changes:
            operations["$set"] = dict(changes)
        if increments:
            operations["$inc"] = dict(increments)

        defaults = {"commit_count": 0, "streak_days": 0, "is_viber": False, "stats": {}}
        touched = set(changes) | set(increments or {})
        on_insert = {key: value for key, value in defaults.items() if key not in touched}
        if on_insert:
            operations["$setOnInsert"] = on_insert

        try:
            stat = await self.weekly_stats.find_one_and_update(
                {"user_id": ObjectId(user_id), "week": week},
                operations,
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as pe:
            logger.error(f"Database error in update_weekly_stats: {pe}")
            return None

        return WeeklyStatInDB(**stat)

    async def clear_vibers(self, week: str) -> int:
        """
        Remove the Viber flag from every row of a week.

        Returns:
            Number of rows that were cleared
        """
        try:
            result = await self.weekly_stats.update_many(
                {"week": week, "is_viber": True},
                {"$set": {"is_viber": False}},
            )
        except PyMongoError as pe:
            logger.error(f"Database error in clear_vibers: {pe}")
            raise

        if result.modified_count:
            logger.info(f"Cleared {result.modified_count} Viber flag(s) for week {week}")
        return result.modified_count

    async def get_current_viber_stat(self, week: str) -> Optional[WeeklyStatInDB]:
        """The Viber row of a week, if a winner was recorded."""
        try:
            stat = await self.weekly_stats.find_one({"week": week, "is_viber": True})
        except PyMongoError as pe:
            logger.error(f"Database error in get_current_viber_stat: {pe}")
            return None

        return WeeklyStatInDB(**stat) if stat else None
