"""Inactivity notifications over email and Telegram.

Both channels implement the same two-method interface. A failed send is
logged and reported as False; nothing raised here ever reaches the
scheduler loop.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from email.message import EmailMessage
from html import escape
from typing import List, Optional, Sequence

import aiosmtplib
import httpx

from app.core.config import Settings, get_settings
from app.models.base import ensure_utc
from app.models.repository import RepositoryInDB, RepositoryStatus
from app.models.user import NotificationChannel, UserInDB
from app.services.status import WARNING_THRESHOLD_DAYS

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


def format_last_commit(date: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Human readable age of a commit."""
    if date is None:
        return "unknown"

    now = now or datetime.now(timezone.utc)
    diff_days = int((now - ensure_utc(date)).total_seconds() // 86400)

    if diff_days == 0:
        return "today"
    if diff_days == 1:
        return "yesterday"
    if diff_days < 30:
        return f"{diff_days} days ago"
    return ensure_utc(date).strftime("%Y-%m-%d")


def _display_name(user: UserInDB) -> str:
    return user.name or user.username


class NotificationService(ABC):
    """Channel capable of sending inactivity warnings and alerts."""

    channel: NotificationChannel

    @abstractmethod
    async def _deliver(self, user: UserInDB, subject: str, repositories: List[RepositoryInDB], alert: bool) -> None:
        """Send one message; raise on failure."""

    def _can_reach(self, user: UserInDB) -> bool:
        return True

    async def _notify(
        self,
        user: UserInDB,
        repositories: Sequence[RepositoryInDB],
        status: RepositoryStatus,
        subject: str,
    ) -> bool:
        if not self._can_reach(user):
            logger.debug(f"{self.channel.value} notification skipped for {user.username}")
            return False

        selected = [repo for repo in repositories if repo.status == status]
        if not selected:
            return True

        try:
            await self._deliver(user, subject, selected, alert=status == RepositoryStatus.INACTIVE)
        except Exception as e:
            logger.error(f"Failed to send {self.channel.value} {subject!r} to {user.username}: {e}")
            return False

        logger.info(f"Sent {self.channel.value} {subject!r} to {user.username} ({len(selected)} repositories)")
        return True

    async def send_inactivity_warning(self, user: UserInDB, repositories: Sequence[RepositoryInDB]) -> bool:
        """Warn about repositories in `warning` status. True if sent or nothing to send."""
        return await self._notify(user, repositories, RepositoryStatus.WARNING, "Vibe Coding - Activity Warning")

    async def send_inactivity_alert(self, user: UserInDB, repositories: Sequence[RepositoryInDB]) -> bool:
        """Alert about repositories in `inactive` status. True if sent or nothing to send."""
        return await self._notify(user, repositories, RepositoryStatus.INACTIVE, "Vibe Coding - Inactivity Alert")


class EmailNotificationService(NotificationService):
    """Notifications sent over SMTP with aiosmtplib."""

    channel = NotificationChannel.EMAIL

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        if not self._settings.email_enabled:
            logger.warning("SMTP host not configured. Email notifications are disabled.")

    def _can_reach(self, user: UserInDB) -> bool:
        return self._settings.email_enabled and bool(user.email)

    def build_message(
        self,
        user: UserInDB,
        subject: str,
        repositories: List[RepositoryInDB],
        alert: bool,
    ) -> EmailMessage:
        """Build the multipart (text + html) message."""
        lines = [f"- {repo.full_name}: Last commit {format_last_commit(repo.last_commit_date)}" for repo in repositories]
        items = "".join(
            f"<li><strong>{escape(repo.full_name)}</strong>: Last commit {format_last_commit(repo.last_commit_date)}</li>"
            for repo in repositories
        )

        if alert:
            intro = f"ALERT: The following repositories have not had any activity for over {WARNING_THRESHOLD_DAYS} days:"
            outro = (
                "Your status in the Vibe Coding community has been changed to INACTIVE.\n"
                "Please commit some code to regain your active status. "
                "If you need more time, you can set vacation mode in your profile."
            )
            heading = '<h2 style="color: #EF4444;">Inactivity Alert</h2>'
        else:
            intro = (
                "This is a friendly reminder that some of your repositories are getting close "
                f"to the {WARNING_THRESHOLD_DAYS}-day inactivity limit:"
            )
            outro = (
                "Please commit some code to keep your active status in the Vibe Coding community.\n"
                "If you're going on vacation, you can set vacation mode in your profile to pause these reminders."
            )
            heading = "<h2>Activity Warning</h2>"

        text = "\n\n".join([f"Hello {_display_name(user)},", intro, "\n".join(lines), outro, "The Vibe Coding Team"])
        html = (
            '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
            f"{heading}<p>Hello {escape(_display_name(user))},</p><p>{intro}</p><ul>{items}</ul>"
            + "".join(f"<p>{paragraph}</p>" for paragraph in outro.split("\n"))
            + "<p>The Vibe Coding Team</p></div>"
        )

        message = EmailMessage()
        message["From"] = self._settings.email_from
        message["To"] = user.email
        message["Subject"] = subject
        message.set_content(text)
        message.add_alternative(html, subtype="html")
        return message

    async def _deliver(self, user: UserInDB, subject: str, repositories: List[RepositoryInDB], alert: bool) -> None:
        message = self.build_message(user, subject, repositories, alert)
        await aiosmtplib.send(
            message,
            hostname=self._settings.smtp_host,
            port=self._settings.smtp_port,
            username=self._settings.smtp_user or None,
            password=self._settings.smtp_password or None,
            start_tls=self._settings.smtp_use_tls,
        )


class TelegramNotificationService(NotificationService):
    """Notifications sent through the Telegram Bot API."""

    channel = NotificationChannel.TELEGRAM

    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.AsyncClient] = None) -> None:
        self._settings = settings or get_settings()
        self._client = client
        if not self._settings.telegram_enabled:
            logger.warning("Telegram bot token not provided. Telegram notifications are disabled.")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(15.0))
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    def _can_reach(self, user: UserInDB) -> bool:
        return self._settings.telegram_enabled and bool(user.telegram_id)

    @staticmethod
    def build_text(user: UserInDB, repositories: List[RepositoryInDB], alert: bool) -> str:
        """HTML body of a Telegram message; names are escaped for the HTML parse mode."""
        name = escape(_display_name(user))
        repo_list = "\n".join(
            f"• <b>{escape(repo.full_name)}</b>: Last commit {format_last_commit(repo.last_commit_date)}"
            for repo in repositories
        )

        if alert:
            return (
                "🚨 <b>INACTIVITY ALERT</b>\n\n"
                f"Hello {name},\n\n"
                f"The following repositories have not had any activity for over {WARNING_THRESHOLD_DAYS} days:\n\n"
                f"{repo_list}\n\n"
                "Your status in the Vibe Coding community has been changed to <b>INACTIVE</b>.\n\n"
                "Please commit some code to regain your active status. "
                "If you need more time, you can set vacation mode in your profile."
            )
        return (
            "⚠️ <b>Activity Warning</b>\n\n"
            f"Hello {name},\n\n"
            f"Some of your repositories are getting close to the {WARNING_THRESHOLD_DAYS}-day inactivity limit:\n\n"
            f"{repo_list}\n\n"
            "Please commit some code to keep your active status in the Vibe Coding community.\n\n"
            "Happy coding!"
        )

    async def _deliver(self, user: UserInDB, subject: str, repositories: List[RepositoryInDB], alert: bool) -> None:
        response = await self.client.post(
            f"{TELEGRAM_API_URL}/bot{self._settings.telegram_bot_token}/sendMessage",
            json={
                "chat_id": user.telegram_id,
                "text": self.build_text(user, repositories, alert),
                "parse_mode": "HTML",
            },
        )
        response.raise_for_status()


def select_notification_service(
    user: UserInDB,
    email: NotificationService,
    telegram: NotificationService,
) -> NotificationService:
    """Pick the channel for a user: Telegram when chosen and connected, else email."""
    if user.notification_preference == NotificationChannel.TELEGRAM and user.telegram_id:
        return telegram
    return email


class NotificationDispatcher:
    """Holds one instance per channel and resolves the channel for each user."""

    def __init__(self, email: NotificationService, telegram: NotificationService) -> None:
        self.email = email
        self.telegram = telegram

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "NotificationDispatcher":
        settings = settings or get_settings()
        return cls(EmailNotificationService(settings), TelegramNotificationService(settings))

    def for_user(self, user: UserInDB) -> NotificationService:
        return select_notification_service(user, self.email, self.telegram)

    async def close(self) -> None:
        for service in (self.email, self.telegram):
            close = getattr(service, "close", None)
            if close is not None:
                await close()
