"""Application configuration."""

import logging
from functools import lru_cache
from typing import Optional

from cryptography.fernet import Fernet
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Vibe Coding Tracker"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # MongoDB
    mongodb_url: str
    mongodb_db_name: str
    mongodb_max_pool_size: int = 50
    mongodb_min_pool_size: int = 10

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    redis_max_connections: int = 50
    user_cache_ttl_seconds: int = 300

    # GitHub OAuth
    github_client_id: str
    github_client_secret: str
    github_redirect_uri: str

    # GitHub API
    github_rate_limit_per_hour: int = 5000
    github_request_timeout: float = 30.0

    # Stored GitHub tokens are encrypted with this Fernet key
    token_encryption_key: str

    # JWT (session secret)
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 15
    jwt_refresh_token_expire_days: int = 7

    # Email notifications (disabled when smtp_host is unset)
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    email_from: str = '"Vibe Coding" <noreply@vibecoding.example.com>'

    # Telegram notifications (disabled when the token is unset)
    telegram_bot_token: Optional[str] = None

    # Scheduler
    scheduler_enabled: bool = True
    check_interval_hours: float = 24.0

    # Rate Limiting
    rate_limit_enabled: bool = True
    rate_limit_default: str = "100/minute"
    rate_limit_auth: str = "5/minute"
    rate_limit_api: str = "50/minute"
    rate_limit_admin: str = "10/minute"

    # API
    api_v1_prefix: str = "/api/v1"
    frontend_url: str

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("mongodb_url")
    @classmethod
    def validate_mongodb_url(cls, v: str) -> str:
        """Validate MongoDB URL format."""
        if not v.startswith(("mongodb://", "mongodb+srv://")):
            raise ValueError("Invalid MongoDB URL format")
        return v

    @field_validator("jwt_secret_key")
    @classmethod
    def validate_jwt_secret(cls, v: str) -> str:
        """Validate JWT secret key length."""
        if len(v) < 32:
            raise ValueError("JWT secret key must be at least 32 characters")
        return v

    @field_validator("token_encryption_key")
    @classmethod
    def validate_token_encryption_key(cls, v: str) -> str:
        """Validate that the token encryption key is a usable Fernet key."""
        try:
            Fernet(v.encode())
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid token encryption key: {e}")
        return v

    @field_validator("check_interval_hours")
    @classmethod
    def validate_check_interval(cls, v: float) -> float:
        """Validate the repository check interval."""
        if v <= 0:
            raise ValueError("Check interval must be positive")
        return v

    @property
    def email_enabled(self) -> bool:
        """Whether outbound email is configured."""
        return bool(self.smtp_host)

    @property
    def telegram_enabled(self) -> bool:
        """Whether the Telegram bot is configured."""
        return bool(self.telegram_bot_token)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Initialize logger
logger = setup_logging(get_settings().log_level)
