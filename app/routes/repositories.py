"""
Tracked repository routes.

This module provides endpoints to:
- List, add and remove the repositories the user tracks
- Sync one repository with GitHub right away
- List the user's GitHub repositories to pick from
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from app.core.config import get_settings
from app.core.database import get_database
from app.middleware.rate_limiting import limiter
from app.models.repository import RepositoryCreate, RepositoryResponse
from app.models.user import UserInDB
from app.routes.dependencies import get_current_user, get_github_service, get_github_token
from app.services.github import (
    GitHubAPIError,
    GitHubAuthenticationError,
    GitHubRateLimitError,
    GitHubService,
)
from app.services.repository import RepositoryService, RepositoryValidationError

# Configure logging
logger = logging.getLogger(__name__)

# Router configuration
repositories_router = APIRouter(prefix="/repositories", tags=["Repositories"])


def github_error_to_http(error: GitHubAPIError) -> HTTPException:
    """Map a GitHub client error to the HTTP error returned to the caller."""
    if isinstance(error, GitHubAuthenticationError):
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="GitHub session expired. Please re-authenticate.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if isinstance(error, GitHubRateLimitError):
        return HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="GitHub API rate limit exceeded. Please try again later.",
        )
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail="Failed to reach GitHub. Please try again later.",
    )


@repositories_router.get(
    "",
    response_model=List[RepositoryResponse],
    summary="List tracked repositories",
    status_code=status.HTTP_200_OK,
)
@limiter.limit(get_settings().rate_limit_api)
async def list_repositories(
    request: Request,
    current_user: UserInDB = Depends(get_current_user),
    db=Depends(get_database),
) -> List[RepositoryResponse]:
    """Repositories tracked by the authenticated user."""
    repositories = await RepositoryService(db).get_repositories_by_user(current_user.id)
    return [RepositoryResponse.from_db(repo) for repo in repositories]


@repositories_router.post(
    "",
    response_model=RepositoryResponse,
    summary="Track a repository",
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(get_settings().rate_limit_api)
async def add_repository(
    request: Request,
    body: RepositoryCreate,
    current_user: UserInDB = Depends(get_current_user),
    access_token: str = Depends(get_github_token),
    github_service: GitHubService = Depends(get_github_service),
    db=Depends(get_database),
) -> RepositoryResponse:
    """
    Start tracking a GitHub repository.

    The repository must exist on GitHub and must not be tracked by the user
    already. It stays `pending` until its first check.

    Raises:
        HTTPException:
            - 400 if the repository does not exist
            - 409 if the repository is already tracked
            - 401/429/502 if GitHub could not be asked
    """
    try:
        repository = await RepositoryService(db).add_repository(
            current_user.id, body.full_name, access_token, github_service
        )
    except RepositoryValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT if e.conflict else status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    except GitHubAPIError as e:
        logger.error(f"GitHub error adding {body.full_name} for {current_user.username}: {e.message}")
        raise github_error_to_http(e)

    return RepositoryResponse.from_db(repository)


@repositories_router.delete(
    "/{repository_id}",
    summary="Stop tracking a repository",
    status_code=status.HTTP_204_NO_CONTENT,
)
@limiter.limit(get_settings().rate_limit_api)
async def delete_repository(
    request: Request,
    repository_id: str,
    current_user: UserInDB = Depends(get_current_user),
    db=Depends(get_database),
) -> Response:
    """
    Delete a tracked repository and its activity feed entries.

    Raises:
        HTTPException:
            - 400 if the id is malformed
            - 403 if the repository belongs to someone else
            - 404 if the repository does not exist
    """
    try:
        deleted = await RepositoryService(db).delete_repository(
            repository_id, current_user.id, is_admin=current_user.is_admin
        )
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid repository id")
    except PermissionError:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to delete this repository")

    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Repository not found")

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@repositories_router.post(
    "/{repository_id}/sync",
    response_model=RepositoryResponse,
    summary="Sync a repository with GitHub now",
    status_code=status.HTTP_200_OK,
)
@limiter.limit(get_settings().rate_limit_api)
async def sync_repository(
    request: Request,
    repository_id: str,
    current_user: UserInDB = Depends(get_current_user),
    access_token: str = Depends(get_github_token),
    github_service: GitHubService = Depends(get_github_service),
    db=Depends(get_database),
) -> RepositoryResponse:
    """Refresh the status of one of the user's repositories immediately."""
    service = RepositoryService(db)
    try:
        repository = await service.get_repository(repository_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid repository id")

    if repository is None or repository.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Repository not found")

    try:
        repository = await service.sync_repository(repository, access_token, github_service)
    except GitHubAPIError as e:
        logger.error(f"GitHub error syncing {repository.full_name}: {e.message}")
        raise github_error_to_http(e)

    return RepositoryResponse.from_db(repository)


@repositories_router.get(
    "/github",
    response_model=List[Dict[str, Any]],
    summary="List the user's GitHub repositories",
    status_code=status.HTTP_200_OK,
)
@limiter.limit(get_settings().rate_limit_api)
async def list_github_repositories(
    request: Request,
    current_user: UserInDB = Depends(get_current_user),
    access_token: str = Depends(get_github_token),
    github_service: GitHubService = Depends(get_github_service),
) -> List[Dict[str, Any]]:
    """Repositories visible to the user on GitHub, reduced to what the picker needs."""
    try:
        repos = await github_service.get_user_repos(access_token)
    except GitHubAPIError as e:
        logger.error(f"GitHub error listing repositories for {current_user.username}: {e.message}")
        raise github_error_to_http(e)

    return [
        {
            "full_name": repo.get("full_name"),
            "description": repo.get("description"),
            "private": repo.get("private", False),
            "pushed_at": repo.get("pushed_at"),
        }
        for repo in repos
    ]
