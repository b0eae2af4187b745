"""
Admin routes.

Every endpoint requires an administrator. The repository check endpoint
runs the same check as the scheduler's timer and returns its result.
"""

import logging
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.core.config import get_settings
from app.core.database import get_database
from app.middleware.rate_limiting import limiter
from app.models import CheckResult, RepositoryStatus, SystemStats, UserInDB, UserResponse, VacationUpdate
from app.routes.dependencies import get_scheduler, get_user_service, require_admin
from app.services.repository import RepositoryService
from app.services.scheduler import DailyCheckScheduler
from app.services.status import classify_system_health
from app.services.user import UserService

# Configure logging
logger = logging.getLogger(__name__)

# Router configuration
admin_router = APIRouter(prefix="/admin", tags=["Admin"])


@admin_router.post(
    "/check-repositories",
    response_model=CheckResult,
    summary="Run the repository check now",
    status_code=status.HTTP_200_OK,
)
@limiter.limit(get_settings().rate_limit_admin)
async def check_repositories(
    request: Request,
    admin: UserInDB = Depends(require_admin),
    scheduler: DailyCheckScheduler = Depends(get_scheduler),
) -> CheckResult:
    """
    Check every user's repositories immediately.

    Failures of single repositories are reported in the result, never as
    an HTTP error.
    """
    logger.info(f"Manual repository check triggered by {admin.username}")
    return await scheduler.run_check()


@admin_router.get(
    "/users",
    response_model=List[UserResponse],
    summary="List all users",
    status_code=status.HTTP_200_OK,
)
@limiter.limit(get_settings().rate_limit_admin)
async def list_users(
    request: Request,
    admin: UserInDB = Depends(require_admin),
    user_service: UserService = Depends(get_user_service),
) -> List[UserResponse]:
    return [UserResponse.from_db(user) for user in await user_service.get_users()]


@admin_router.put(
    "/users/{user_id}/vacation",
    response_model=UserResponse,
    summary="Set a user's vacation mode",
    status_code=status.HTTP_200_OK,
)
@limiter.limit(get_settings().rate_limit_admin)
async def set_user_vacation(
    request: Request,
    user_id: str,
    body: VacationUpdate,
    admin: UserInDB = Depends(require_admin),
    user_service: UserService = Depends(get_user_service),
) -> UserResponse:
    """Override vacation mode for any user."""
    try:
        user = await user_service.set_vacation(user_id, body.on_vacation, body.vacation_until)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid user id")

    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    logger.info(f"Admin {admin.username} set vacation={body.on_vacation} for {user.username}")
    return UserResponse.from_db(user)


@admin_router.delete(
    "/users/{user_id}",
    response_model=Dict[str, bool],
    summary="Delete a user",
    status_code=status.HTTP_200_OK,
)
@limiter.limit(get_settings().rate_limit_admin)
async def delete_user(
    request: Request,
    user_id: str,
    admin: UserInDB = Depends(require_admin),
    user_service: UserService = Depends(get_user_service),
) -> Dict[str, bool]:
    """
    Delete a user with their repositories, progress, weekly stats and feed.

    Raises:
        HTTPException:
            - 400 if the id is malformed or is the admin's own account
            - 404 if the user does not exist
    """
    if user_id == str(admin.id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete your own account")

    try:
        deleted = await user_service.delete_user(user_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid user id")

    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    logger.info(f"Admin {admin.username} deleted user {user_id}")
    return {"success": True}


@admin_router.get(
    "/stats",
    response_model=SystemStats,
    summary="System overview",
    status_code=status.HTTP_200_OK,
)
@limiter.limit(get_settings().rate_limit_admin)
async def get_system_stats(
    request: Request,
    admin: UserInDB = Depends(require_admin),
    user_service: UserService = Depends(get_user_service),
    db=Depends(get_database),
) -> SystemStats:
    """User and repository counts with an overall health rating."""
    repositories = RepositoryService(db)
    total_users = len(await user_service.get_users())
    active_users = len(await user_service.get_active_users())

    return SystemStats(
        total_users=total_users,
        active_users=active_users,
        total_repositories=await repositories.count_repositories(),
        active_repositories=await repositories.count_repositories(RepositoryStatus.ACTIVE),
        system_health=classify_system_health(active_users, total_users),
    )
