"""User data models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.base import PyObjectId, utcnow


class NotificationChannel(str, Enum):
    """Channel used for inactivity notifications."""

    EMAIL = "email"
    TELEGRAM = "telegram"


class UserBase(BaseModel):
    """Base user model with common fields."""

    github_id: int
    username: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    email: Optional[str] = None


class UserInDB(UserBase):
    """User model as stored in database."""

    id: PyObjectId = Field(default_factory=ObjectId, alias="_id")
    # Fernet-encrypted GitHub OAuth token
    github_access_token: Optional[str] = None
    telegram_id: Optional[str] = None
    notification_preference: NotificationChannel = NotificationChannel.EMAIL
    on_vacation: bool = False
    vacation_until: Optional[datetime] = None
    is_admin: bool = False
    last_active: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )


class UserResponse(UserBase):
    """User response model for API."""

    id: str
    notification_preference: NotificationChannel
    telegram_connected: bool
    on_vacation: bool
    vacation_until: Optional[datetime] = None
    is_admin: bool
    last_active: datetime
    created_at: datetime

    @classmethod
    def from_db(cls, user: UserInDB) -> "UserResponse":
        """Build the public representation of a stored user."""
        return cls(
            id=str(user.id),
            github_id=user.github_id,
            username=user.username,
            name=user.name,
            avatar_url=user.avatar_url,
            email=user.email,
            notification_preference=user.notification_preference,
            telegram_connected=bool(user.telegram_id),
            on_vacation=user.on_vacation,
            vacation_until=user.vacation_until,
            is_admin=user.is_admin,
            last_active=user.last_active,
            created_at=user.created_at,
        )


class NotificationSettingsUpdate(BaseModel):
    """Request body for changing the notification channel."""

    notification_preference: NotificationChannel
    telegram_id: Optional[str] = Field(None, max_length=64)

    @model_validator(mode="after")
    def check_telegram_id(self) -> "NotificationSettingsUpdate":
        if self.notification_preference == NotificationChannel.TELEGRAM and not self.telegram_id:
            raise ValueError("telegram_id is required for telegram notifications")
        return self


class VacationUpdate(BaseModel):
    """Request body for toggling vacation mode."""

    on_vacation: bool
    vacation_until: Optional[datetime] = None

    @model_validator(mode="after")
    def check_until(self) -> "VacationUpdate":
        if self.on_vacation and self.vacation_until is None:
            raise ValueError("vacation_until is required when enabling vacation mode")
        if not self.on_vacation:
            self.vacation_until = None
        return self
