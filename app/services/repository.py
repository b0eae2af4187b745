"""
Repository service for tracked GitHub repositories.

This module provides the RepositoryService class which stores the
repositories users register, validates new registrations against GitHub,
and performs the on-demand sync of a single repository.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from app.models import RepositoryInDB, RepositoryStatus
from app.models.base import ensure_utc
from app.services.github import GitHubService
from app.services.status import calculate_repository_status

logger = logging.getLogger(__name__)


class RepositoryValidationError(ValueError):
    """A repository registration was rejected."""

    def __init__(self, message: str, conflict: bool = False) -> None:
        self.conflict = conflict
        super().__init__(message)


def _object_id(value: str) -> ObjectId:
    if not ObjectId.is_valid(value):
        raise ValueError(f"Invalid ObjectId: {value}")
    return ObjectId(value)


def _commit_date(commit: Dict[str, Any]) -> datetime:
    raw = commit["commit"]["author"]["date"]
    return ensure_utc(datetime.fromisoformat(raw.replace("Z", "+00:00")))


class RepositoryService:
    """Service class for repository database operations."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        """
        Initialize the RepositoryService.

        Args:
            db: AsyncIO Motor database instance
        """
        self._db = db
        self.collection = db["repositories"]

    async def get_repository(self, repository_id: str) -> Optional[RepositoryInDB]:
        """
        Retrieve a repository by id.

        Raises:
            ValueError: If repository_id is not a valid ObjectId
        """
        oid = _object_id(repository_id)
        try:
            repo = await self.collection.find_one({"_id": oid})
        except PyMongoError as pe:
            logger.error(f"Database error in get_repository: {pe}")
            return None

        return RepositoryInDB(**repo) if repo else None

    async def get_repositories_by_user(self, user_id: ObjectId) -> List[RepositoryInDB]:
        """All repositories owned by a user, in insertion order."""
        try:
            repos = await self.collection.find({"user_id": ObjectId(user_id)}).sort("_id", 1).to_list(length=None)
        except PyMongoError as pe:
            logger.error(f"Database error in get_repositories_by_user: {pe}")
            return []

        return [RepositoryInDB(**repo) for repo in repos]

    async def count_repositories(self, status: Optional[RepositoryStatus] = None) -> int:
        query = {"status": status.value} if status else {}
        try:
            return await self.collection.count_documents(query)
        except PyMongoError as pe:
            logger.error(f"Database error in count_repositories: {pe}")
            return 0

    async def add_repository(
        self,
        user_id: ObjectId,
        full_name: str,
        access_token: str,
        github_service: GitHubService,
    ) -> RepositoryInDB:
        """
        Register a repository for a user.

        Args:
            user_id: Owner of the registration
            full_name: Repository in owner/repo form
            access_token: Decrypted GitHub token of the user
            github_service: GitHub API client

        Returns:
            The stored repository in `pending` status

        Raises:
            RepositoryValidationError: If the name is malformed, the repository
                does not exist on GitHub, or the user already tracks it
            GitHubAPIError: If GitHub could not be asked
        """
        owner, _, name = full_name.partition("/")
        if not owner or not name or "/" in name:
            raise RepositoryValidationError(f"Invalid repository name: {full_name}")

        existing = await self.collection.find_one(
            {"user_id": ObjectId(user_id), "full_name": {"$regex": f"^{re.escape(full_name)}$", "$options": "i"}}
        )
        if existing:
            raise RepositoryValidationError(f"Repository {full_name} is already added", conflict=True)

        if not await github_service.check_repository_exists(access_token, full_name):
            raise RepositoryValidationError(f"Repository {full_name} was not found on GitHub")

        repository = RepositoryInDB(user_id=ObjectId(user_id), name=name, full_name=full_name)
        document = repository.model_dump(by_alias=True)
        document["status"] = repository.status.value

        await self.collection.insert_one(document)
        logger.info(f"User {user_id} added repository {full_name}")
        return repository

    async def update_repository(self, repository_id: ObjectId, changes: Dict[str, Any]) -> Optional[RepositoryInDB]:
        """
        Apply a partial update to a repository.

        Returns:
            The updated repository, or None if it does not exist or the write failed
        """
        changes = {**changes, "updated_at": datetime.now(timezone.utc)}
        if isinstance(changes.get("status"), RepositoryStatus):
            changes["status"] = changes["status"].value

        try:
            repo = await self.collection.find_one_and_update(
                {"_id": ObjectId(repository_id)},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as pe:
            logger.error(f"Database error in update_repository: {pe}")
            return None

        return RepositoryInDB(**repo) if repo else None

    async def delete_repository(self, repository_id: str, user_id: ObjectId, is_admin: bool = False) -> bool:
        """
        Delete a repository owned by the user (admins may delete any).

        Returns:
            True if a repository was deleted

        Raises:
            ValueError: If repository_id is not a valid ObjectId
            PermissionError: If the user does not own the repository
        """
        repository = await self.get_repository(repository_id)
        if repository is None:
            return False

        if not is_admin and repository.user_id != ObjectId(user_id):
            raise PermissionError("Repository belongs to another user")

        result = await self.collection.delete_one({"_id": repository.id})
        await self._db["activity_feed"].delete_many({"repository_id": repository.id})
        logger.info(f"Deleted repository {repository.full_name}")
        return result.deleted_count > 0

    async def sync_repository(
        self,
        repository: RepositoryInDB,
        access_token: str,
        github_service: GitHubService,
    ) -> RepositoryInDB:
        """
        Refresh one repository from GitHub right away.

        Uses the same classification as the scheduled check. A repository
        without commits keeps its previous state. The stored commit SHA is
        left for the scheduled check, which counts the commits since it.

        Raises:
            GitHubAPIError: If GitHub could not be asked
        """
        latest = await github_service.get_latest_commit(access_token, repository.full_name)
        if latest is None:
            logger.info(f"No commits found for repository {repository.full_name}")
            return repository

        last_commit_date = _commit_date(latest)
        updated = await self.update_repository(
            repository.id,
            {
                "status": calculate_repository_status(last_commit_date),
                "last_commit_date": last_commit_date,
            },
        )
        return updated or repository
