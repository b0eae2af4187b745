"""Services module for Vibe Coding Tracker.

This module contains service layer classes that handle business logic,
persistence and external API integrations.
"""

from app.services.activity_feed import ActivityFeedService
from app.services.github import (
    GitHubAPIError,
    GitHubAuthenticationError,
    GitHubNotFoundError,
    GitHubRateLimiter,
    GitHubRateLimitError,
    GitHubService,
    GitHubTransientError,
)
from app.services.notification import (
    EmailNotificationService,
    NotificationDispatcher,
    NotificationService,
    TelegramNotificationService,
)
from app.services.progress import ProgressService
from app.services.repository import RepositoryService, RepositoryValidationError
from app.services.scheduler import DailyCheckScheduler
from app.services.user import UserService

__all__ = [
    "ActivityFeedService",
    "DailyCheckScheduler",
    "EmailNotificationService",
    "GitHubService",
    "GitHubAPIError",
    "GitHubAuthenticationError",
    "GitHubNotFoundError",
    "GitHubRateLimiter",
    "GitHubRateLimitError",
    "GitHubTransientError",
    "NotificationDispatcher",
    "NotificationService",
    "ProgressService",
    "RepositoryService",
    "RepositoryValidationError",
    "TelegramNotificationService",
    "UserService",
]
