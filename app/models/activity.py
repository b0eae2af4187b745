"""
Activity feed and repository check models.

This module contains the append-only activity feed entries written by the
scheduler and the result models returned by a repository check run.
"""

from datetime import datetime
from typing import List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field

from app.models.base import PyObjectId, utcnow
from app.models.repository import RepositoryStatus


class ActivityFeedEntry(BaseModel):
    """One commit recorded in a user's activity feed."""

    id: PyObjectId = Field(default_factory=ObjectId, alias="_id")
    user_id: PyObjectId
    repository_id: PyObjectId
    commit_sha: str
    commit_message: str
    files_changed: int = 0
    lines_added: int = 0
    lines_deleted: int = 0
    ai_summary: Optional[str] = None
    commit_date: datetime
    created_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )


class ActivityFeedResponse(BaseModel):
    """Response model for the activity feed endpoint."""

    entries: List[ActivityFeedEntry] = Field(..., description="Feed entries, newest commit first")


class CheckDetail(BaseModel):
    """Outcome of one user or repository during a check run."""

    user: str
    repository: Optional[str] = None
    old_status: Optional[RepositoryStatus] = None
    new_status: Optional[RepositoryStatus] = None
    skipped: Optional[str] = Field(None, description="Reason the user or repository was skipped")
    error: Optional[str] = None


class CheckResult(BaseModel):
    """Aggregated result of one repository check run."""

    users_checked: int = 0
    repositories_updated: int = 0
    errors: int = 0
    viber: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    cancelled: bool = False
    details: List[CheckDetail] = Field(default_factory=list)


class SystemStats(BaseModel):
    """System overview for the admin panel."""

    total_users: int
    active_users: int
    total_repositories: int
    active_repositories: int
    system_health: str
