"""Gamification models: per-user progress and weekly statistics."""

from datetime import datetime
from typing import Any, Dict, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, computed_field

from app.models.base import PyObjectId, utcnow

EXPERIENCE_PER_LEVEL = 100


def level_for_experience(experience: int) -> int:
    """Level derived from experience points."""
    return experience // EXPERIENCE_PER_LEVEL + 1


class UserProgressInDB(BaseModel):
    """
    Accumulated progress of one user.

    `level` is never stored; it is always derived from `experience`.
    """

    id: PyObjectId = Field(default_factory=ObjectId, alias="_id")
    user_id: PyObjectId
    total_commits: int = 0
    active_days: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    experience: int = 0
    # ISO date (YYYY-MM-DD) of the most recent day with an own commit
    last_commit_day: Optional[str] = None
    updated_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    @computed_field
    @property
    def level(self) -> int:
        return level_for_experience(self.experience)


class ProgressUpdate(BaseModel):
    """Increment applied through ProgressService.update_user_progress_stats."""

    commits: Optional[int] = Field(None, ge=0)
    active_days: Optional[int] = Field(None, ge=0)
    current_streak: Optional[int] = Field(None, ge=0)
    experience: Optional[int] = Field(None, ge=0)
    last_commit_day: Optional[str] = None


class WeeklyStatInDB(BaseModel):
    """Weekly statistics row, unique per (user_id, week)."""

    id: PyObjectId = Field(default_factory=ObjectId, alias="_id")
    user_id: PyObjectId
    week: str
    commit_count: int = 0
    streak_days: int = 0
    is_viber: bool = False
    stats: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )


class ProgressResponse(BaseModel):
    """Progress response model for API."""

    total_commits: int
    active_days: int
    current_streak: int
    longest_streak: int
    level: int
    experience: int

    @classmethod
    def from_db(cls, progress: Optional[UserProgressInDB]) -> "ProgressResponse":
        if progress is None:
            return cls(
                total_commits=0,
                active_days=0,
                current_streak=0,
                longest_streak=0,
                level=level_for_experience(0),
                experience=0,
            )
        return cls(
            total_commits=progress.total_commits,
            active_days=progress.active_days,
            current_streak=progress.current_streak,
            longest_streak=progress.longest_streak,
            level=progress.level,
            experience=progress.experience,
        )


class ViberResponse(BaseModel):
    """Current Viber of the Week."""

    week: str
    username: Optional[str] = None
    avatar_url: Optional[str] = None
