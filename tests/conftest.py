"""
Pytest configuration and shared fixtures.

This module provides test fixtures and configuration for the entire test suite,
including the mock database, fake GitHub and notification collaborators, and
common test data.
"""

import os

# Settings are read at import time, so the environment is prepared first
os.environ.setdefault("MONGODB_URL", "mongodb://localhost:27017")
os.environ.setdefault("MONGODB_DB_NAME", "vibe_coding_test")
os.environ.setdefault("GITHUB_CLIENT_ID", "test_client_id")
os.environ.setdefault("GITHUB_CLIENT_SECRET", "test_client_secret")
os.environ.setdefault("GITHUB_REDIRECT_URI", "http://localhost:8000/api/v1/auth/github/callback")
os.environ.setdefault("JWT_SECRET_KEY", "test_jwt_secret_key_with_sufficient_length_for_validation")
os.environ.setdefault("TOKEN_ENCRYPTION_KEY", "dGVzdC1rZXktZm9yLXRva2VuLWVuY3J5cHRpb24tMDE=")
os.environ.setdefault("FRONTEND_URL", "http://localhost:3000")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from datetime import datetime, timedelta, timezone  # noqa: E402
from typing import Any, Awaitable, Callable, Dict, Optional  # noqa: E402
from unittest.mock import AsyncMock, MagicMock, Mock  # noqa: E402

import pytest  # noqa: E402
from bson import ObjectId  # noqa: E402
from mongomock_motor import AsyncMongoMockClient  # noqa: E402

from app.core.config import Settings  # noqa: E402
from app.core.database import db, get_database  # noqa: E402
from app.core.security import TokenCipher, create_access_token  # noqa: E402
from app.models import CheckResult, NotificationChannel, RepositoryStatus, UserInDB  # noqa: E402
from app.services.notification import NotificationDispatcher  # noqa: E402

TEST_ENCRYPTION_KEY = "dGVzdC1rZXktZm9yLXRva2VuLWVuY3J5cHRpb24tMDE="
FIXED_NOW = datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Test Settings
# =============================================================================

@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Provide test settings configuration.

    Returns:
        Settings object with test configuration
    """
    return Settings(
        app_name="Vibe Coding Tracker Test",
        app_version="1.0.0-test",
        debug=True,
        log_level="DEBUG",
        mongodb_url="mongodb://localhost:27017",
        mongodb_db_name="vibe_coding_test",
        github_client_id="test_client_id",
        github_client_secret="test_client_secret",
        github_redirect_uri="http://localhost:8000/api/v1/auth/github/callback",
        jwt_secret_key="test_jwt_secret_key_with_sufficient_length_for_validation",
        token_encryption_key=TEST_ENCRYPTION_KEY,
        smtp_host="smtp.test.local",
        email_from="noreply@test.local",
        telegram_bot_token="123456:test-bot-token",
        scheduler_enabled=False,
        rate_limit_enabled=False,  # Disable rate limiting in tests
        frontend_url="http://localhost:3000",
    )


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
async def test_db():
    """Create a test database using mongomock."""
    client = AsyncMongoMockClient()
    test_database = client["test_vibe_coding"]

    # Save original db client
    original_client = db.client

    # Replace with test client
    db.client = client

    yield test_database

    # Restore original client
    db.client = original_client


# =============================================================================
# Security Fixtures
# =============================================================================

@pytest.fixture
def token_cipher() -> TokenCipher:
    """Cipher using the test encryption key."""
    return TokenCipher(TEST_ENCRYPTION_KEY)


@pytest.fixture
def user_cache() -> AsyncMock:
    """User cache that always loads from the database."""
    cache = AsyncMock()

    async def get_or_populate(user_id: str, loader: Callable[[], Awaitable[Optional[UserInDB]]]):
        return await loader()

    cache.get_or_populate = AsyncMock(side_effect=get_or_populate)
    cache.invalidate = AsyncMock()
    return cache


# =============================================================================
# Test Data Fixtures
# =============================================================================

@pytest.fixture
def sample_github_user() -> Dict:
    """Sample GitHub user data."""
    return {
        "id": 123456,
        "login": "testuser",
        "name": "Test User",
        "avatar_url": "https://avatars.githubusercontent.com/u/123456",
        "email": "test@example.com",
    }


@pytest.fixture
def sample_user_in_db(sample_github_user: Dict, token_cipher: TokenCipher) -> UserInDB:
    """
    Provide a sample user as stored in database.

    Returns:
        UserInDB instance
    """
    return UserInDB(
        _id=ObjectId("507f1f77bcf86cd799439011"),
        github_id=sample_github_user["id"],
        username=sample_github_user["login"],
        name=sample_github_user["name"],
        email=sample_github_user["email"],
        avatar_url=sample_github_user["avatar_url"],
        github_access_token=token_cipher.encrypt("gho_test_token_1234567890"),
    )


@pytest.fixture
def auth_headers(sample_user_in_db: UserInDB) -> Dict[str, str]:
    """Authorization headers with a JWT access token for the sample user."""
    token, _ = create_access_token(str(sample_user_in_db.id))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(test_db, token_cipher: TokenCipher) -> Callable[..., Awaitable[UserInDB]]:
    """
    Factory inserting users into the test database.

    Keyword arguments override the stored fields. `github_token=None`
    stores a user without a GitHub token.
    """
    counter = {"value": 0}

    async def _make_user(username: str, github_token: Optional[str] = "gho_token", **overrides: Any) -> UserInDB:
        counter["value"] += 1
        document = {
            "_id": ObjectId(),
            "github_id": 1000 + counter["value"],
            "username": username,
            "name": username.title(),
            "email": f"{username}@example.com",
            "github_access_token": token_cipher.encrypt(github_token) if github_token else None,
            "telegram_id": None,
            "notification_preference": NotificationChannel.EMAIL.value,
            "on_vacation": False,
            "vacation_until": None,
            "is_admin": False,
            "last_active": FIXED_NOW - timedelta(days=1),
            "created_at": FIXED_NOW - timedelta(days=30),
            "updated_at": FIXED_NOW - timedelta(days=30),
        }
        document.update(overrides)
        await test_db.users.insert_one(document)
        return UserInDB(**document)

    return _make_user


@pytest.fixture
def make_repository(test_db) -> Callable[..., Awaitable[Dict[str, Any]]]:
    """Factory inserting tracked repositories into the test database."""

    async def _make_repository(user: UserInDB, full_name: str, **overrides: Any) -> Dict[str, Any]:
        document = {
            "_id": ObjectId(),
            "user_id": user.id,
            "name": full_name.split("/")[1],
            "full_name": full_name,
            "status": RepositoryStatus.PENDING.value,
            "last_commit_date": None,
            "last_commit_sha": None,
            "changes_summary": None,
            "summary_generated_at": None,
            "created_at": FIXED_NOW - timedelta(days=30),
            "updated_at": FIXED_NOW - timedelta(days=30),
        }
        document.update(overrides)
        await test_db.repositories.insert_one(document)
        return document

    return _make_repository


def _commit(
    sha: str,
    date: datetime,
    author: str = "testuser",
    message: str = "Update",
) -> Dict[str, Any]:
    """GitHub commit object as returned by the commits endpoints."""
    return {
        "sha": sha,
        "author": {"login": author},
        "commit": {
            "message": message,
            "author": {"name": author, "email": f"{author}@example.com", "date": date.strftime("%Y-%m-%dT%H:%M:%SZ")},
        },
        "files": [{"filename": "main.py"}],
        "stats": {"additions": 10, "deletions": 2, "total": 12},
    }


@pytest.fixture
def make_commit() -> Callable[..., Dict[str, Any]]:
    """Factory for GitHub commit objects."""
    return _commit


# =============================================================================
# Mock Service Fixtures
# =============================================================================

@pytest.fixture
def mock_github_service() -> Mock:
    """
    Provide a mock GitHub service.

    Repositories have no commits unless a test configures get_latest_commit.
    """
    service = Mock()
    service.get_authorization_url = Mock(
        return_value="https://github.com/login/oauth/authorize?client_id=test&state=test_state"
    )
    service.exchange_code_for_token = AsyncMock(return_value={"access_token": "gho_new_token"})
    service.get_user_info = AsyncMock()
    service.get_user_repos = AsyncMock(return_value=[])
    service.check_repository_exists = AsyncMock(return_value=True)
    service.get_latest_commit = AsyncMock(return_value=None)
    service.get_commits_since = AsyncMock(return_value=[])
    service.get_commit = AsyncMock(side_effect=lambda token, full_name, sha: _commit(sha, FIXED_NOW))
    return service


@pytest.fixture
def mock_notification_service() -> MagicMock:
    """Notification channel recording warnings and alerts."""
    service = MagicMock()
    service.channel = NotificationChannel.EMAIL
    service.send_inactivity_warning = AsyncMock(return_value=True)
    service.send_inactivity_alert = AsyncMock(return_value=True)
    return service


@pytest.fixture
def notifications(mock_notification_service: MagicMock) -> NotificationDispatcher:
    """Dispatcher routing every user to the recording channel."""
    return NotificationDispatcher(email=mock_notification_service, telegram=mock_notification_service)


# =============================================================================
# API Client Fixtures
# =============================================================================

@pytest.fixture
def state_manager() -> AsyncMock:
    """OAuth state store accepting every state."""
    manager = AsyncMock()
    manager.create_state = AsyncMock(return_value=True)
    manager.verify_and_consume_state = AsyncMock(return_value=True)
    return manager


@pytest.fixture
def mock_scheduler() -> Mock:
    """Scheduler whose check returns an empty result."""
    scheduler = Mock()
    scheduler.is_running = False
    scheduler.run_check = AsyncMock(return_value=CheckResult(users_checked=0))
    return scheduler


@pytest.fixture
def client(test_db, mock_github_service, token_cipher, user_cache, state_manager, mock_scheduler):
    """
    Test client wired to the mock database and collaborators.

    The lifespan is not run; the components it would build are placed on
    app.state directly.
    """
    from fastapi.testclient import TestClient

    from app.main import app

    async def _get_test_database():
        return test_db

    app.dependency_overrides[get_database] = _get_test_database
    app.state.github_service = mock_github_service
    app.state.token_cipher = token_cipher
    app.state.user_cache = user_cache
    app.state.state_manager = state_manager
    app.state.scheduler = mock_scheduler

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def headers_for() -> Callable[[UserInDB], Dict[str, str]]:
    """Authorization headers for a stored user."""

    def _headers_for(user: UserInDB) -> Dict[str, str]:
        token, _ = create_access_token(str(user.id))
        return {"Authorization": f"Bearer {token}"}

    return _headers_for
