"""Tracked repository models."""

import re
from datetime import datetime
from enum import Enum
from typing import Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.base import PyObjectId, utcnow

FULL_NAME_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,38})/[A-Za-z0-9._-]{1,100}$")


class RepositoryStatus(str, Enum):
    """Activity status of a tracked repository."""

    PENDING = "pending"
    ACTIVE = "active"
    WARNING = "warning"
    INACTIVE = "inactive"


class RepositoryInDB(BaseModel):
    """Repository as stored in database."""

    id: PyObjectId = Field(default_factory=ObjectId, alias="_id")
    user_id: PyObjectId
    name: str
    full_name: str
    status: RepositoryStatus = RepositoryStatus.PENDING
    last_commit_date: Optional[datetime] = None
    last_commit_sha: Optional[str] = None
    changes_summary: Optional[str] = None
    summary_generated_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )


class RepositoryCreate(BaseModel):
    """Request body for adding a repository."""

    full_name: str = Field(..., description="Repository in owner/repo form", examples=["octocat/hello-world"])

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v: str) -> str:
        v = v.strip()
        if not FULL_NAME_PATTERN.match(v):
            raise ValueError("Repository must be given as owner/repo")
        return v


class RepositoryResponse(BaseModel):
    """Repository response model for API."""

    id: str
    name: str
    full_name: str
    status: RepositoryStatus
    last_commit_date: Optional[datetime] = None
    last_commit_sha: Optional[str] = None
    changes_summary: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_db(cls, repository: RepositoryInDB) -> "RepositoryResponse":
        return cls(
            id=str(repository.id),
            name=repository.name,
            full_name=repository.full_name,
            status=repository.status,
            last_commit_date=repository.last_commit_date,
            last_commit_sha=repository.last_commit_sha,
            changes_summary=repository.changes_summary,
            created_at=repository.created_at,
        )
