"""
User profile routes.

This module provides endpoints for the authenticated user's settings
(notification channel, vacation mode), their progress and activity feed,
and the current Viber of the Week.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from app.core.config import get_settings
from app.core.database import get_database
from app.middleware.rate_limiting import limiter
from app.models import (
    ActivityFeedResponse,
    NotificationSettingsUpdate,
    ProgressResponse,
    UserInDB,
    UserResponse,
    VacationUpdate,
    ViberResponse,
    WeeklyStatInDB,
)
from app.routes.dependencies import get_current_user, get_user_service
from app.services.activity_feed import ActivityFeedService
from app.services.progress import ProgressService
from app.services.status import get_week_identifier
from app.services.user import UserService

# Configure logging
logger = logging.getLogger(__name__)

# Router configuration
users_router = APIRouter(prefix="/users", tags=["Users"])


def _updated_or_404(user) -> UserResponse:
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return UserResponse.from_db(user)


@users_router.put(
    "/me/notifications",
    response_model=UserResponse,
    summary="Choose the notification channel",
    status_code=status.HTTP_200_OK,
)
@limiter.limit(get_settings().rate_limit_api)
async def update_notification_settings(
    request: Request,
    body: NotificationSettingsUpdate,
    current_user: UserInDB = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service),
) -> UserResponse:
    """
    Switch between email and Telegram notifications.

    Choosing Telegram requires a chat id. Switching back to email keeps a
    previously connected Telegram id unless a new one is given.
    """
    changes = {"notification_preference": body.notification_preference.value}
    if body.telegram_id:
        changes["telegram_id"] = body.telegram_id

    logger.info(f"User {current_user.username} switched notifications to {body.notification_preference.value}")
    return _updated_or_404(await user_service.update_user(str(current_user.id), changes))


@users_router.put(
    "/me/vacation",
    response_model=UserResponse,
    summary="Enable or disable vacation mode",
    status_code=status.HTTP_200_OK,
)
@limiter.limit(get_settings().rate_limit_api)
async def update_vacation(
    request: Request,
    body: VacationUpdate,
    current_user: UserInDB = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service),
) -> UserResponse:
    """While on vacation a user's repositories are neither checked nor reported."""
    user = await user_service.set_vacation(str(current_user.id), body.on_vacation, body.vacation_until)
    return _updated_or_404(user)


@users_router.get(
    "/me/progress",
    response_model=ProgressResponse,
    summary="Get progress statistics",
    status_code=status.HTTP_200_OK,
)
@limiter.limit(get_settings().rate_limit_api)
async def get_progress(
    request: Request,
    current_user: UserInDB = Depends(get_current_user),
    db=Depends(get_database),
) -> ProgressResponse:
    """Commits, streaks, level and experience of the authenticated user."""
    progress = await ProgressService(db).get_user_progress(current_user.id)
    return ProgressResponse.from_db(progress)


@users_router.get(
    "/me/weekly-stats",
    response_model=List[WeeklyStatInDB],
    summary="Get weekly statistics",
    status_code=status.HTTP_200_OK,
)
@limiter.limit(get_settings().rate_limit_api)
async def get_weekly_stats(
    request: Request,
    current_user: UserInDB = Depends(get_current_user),
    db=Depends(get_database),
) -> List[WeeklyStatInDB]:
    """Weekly statistics of the authenticated user, most recent week first."""
    return await ProgressService(db).get_weekly_stats_by_user(current_user.id)


@users_router.get(
    "/me/activity",
    response_model=ActivityFeedResponse,
    summary="Get the activity feed",
    status_code=status.HTTP_200_OK,
)
@limiter.limit(get_settings().rate_limit_api)
async def get_activity_feed(
    request: Request,
    limit: int = Query(20, ge=1, le=100, description="Maximum number of entries"),
    current_user: UserInDB = Depends(get_current_user),
    db=Depends(get_database),
) -> ActivityFeedResponse:
    """Recent commits of the authenticated user, newest first."""
    entries = await ActivityFeedService(db).get_feed_by_user(current_user.id, limit=limit)
    return ActivityFeedResponse(entries=entries)


@users_router.get(
    "/viber",
    response_model=ViberResponse,
    summary="Get the Viber of the Week",
    status_code=status.HTTP_200_OK,
)
@limiter.limit(get_settings().rate_limit_api)
async def get_viber_of_the_week(
    request: Request,
    current_user: UserInDB = Depends(get_current_user),
    db=Depends(get_database),
    user_service: UserService = Depends(get_user_service),
) -> ViberResponse:
    """The current week's winner; username is null while the title is vacant."""
    week = get_week_identifier()
    stat = await ProgressService(db).get_current_viber_stat(week)
    if stat is None:
        return ViberResponse(week=week)

    winner = await user_service.get_user_by_id(str(stat.user_id))
    if winner is None:
        return ViberResponse(week=week)
    return ViberResponse(week=week, username=winner.username, avatar_url=winner.avatar_url)
