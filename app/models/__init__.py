"""Data models for the application."""

from app.models.activity import (
    ActivityFeedEntry,
    ActivityFeedResponse,
    CheckDetail,
    CheckResult,
    SystemStats,
)
from app.models.auth import LoginResponse, TokenPayload, TokenResponse
from app.models.progress import (
    ProgressResponse,
    ProgressUpdate,
    UserProgressInDB,
    ViberResponse,
    WeeklyStatInDB,
)
from app.models.repository import (
    RepositoryCreate,
    RepositoryInDB,
    RepositoryResponse,
    RepositoryStatus,
)
from app.models.user import (
    NotificationChannel,
    NotificationSettingsUpdate,
    UserBase,
    UserInDB,
    UserResponse,
    VacationUpdate,
)

__all__ = [
    # User models
    "NotificationChannel",
    "NotificationSettingsUpdate",
    "UserBase",
    "UserInDB",
    "UserResponse",
    "VacationUpdate",
    # Token models
    "LoginResponse",
    "TokenPayload",
    "TokenResponse",
    # Repository models
    "RepositoryCreate",
    "RepositoryInDB",
    "RepositoryResponse",
    "RepositoryStatus",
    # Progress models
    "ProgressResponse",
    "ProgressUpdate",
    "UserProgressInDB",
    "ViberResponse",
    "WeeklyStatInDB",
    # Activity models
    "ActivityFeedEntry",
    "ActivityFeedResponse",
    "CheckDetail",
    "CheckResult",
    "SystemStats",
]
