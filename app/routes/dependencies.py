"""
FastAPI route dependencies for authentication and authorization.

This module provides reusable dependencies that can be injected into
route handlers to enforce authentication, admin access, and to reach the
long-lived components built at startup and kept on `app.state`.
"""

import logging

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials

from app.core.cache import OAuthStateManager, UserCache
from app.core.database import get_database
from app.core.security import ACCESS_TOKEN, TokenCipher, security, verify_token
from app.models.user import UserInDB
from app.services.github import GitHubService
from app.services.scheduler import DailyCheckScheduler
from app.services.user import UserService

# Configure logging
logger = logging.getLogger(__name__)


def get_github_service(request: Request) -> GitHubService:
    """Shared GitHub API client."""
    return request.app.state.github_service


def get_token_cipher(request: Request) -> TokenCipher:
    """Cipher for stored GitHub tokens."""
    return request.app.state.token_cipher


def get_user_cache(request: Request) -> UserCache:
    """Authenticated user cache."""
    return request.app.state.user_cache


def get_state_manager(request: Request) -> OAuthStateManager:
    """OAuth state store."""
    return request.app.state.state_manager


def get_scheduler(request: Request) -> DailyCheckScheduler:
    """Repository check scheduler."""
    return request.app.state.scheduler


async def get_user_service(
    db=Depends(get_database),
    user_cache: UserCache = Depends(get_user_cache),
) -> UserService:
    """UserService that keeps the user cache consistent."""
    return UserService(db, user_cache)


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    user_service: UserService = Depends(get_user_service),
    user_cache: UserCache = Depends(get_user_cache),
) -> UserInDB:
    """
    Dependency to get the currently authenticated user.

    This dependency:
    1. Extracts and validates the JWT access token from the Authorization header
    2. Resolves the user through the user cache, loading it from the database on a miss
    3. Stores user_id in request.state for rate limiting

    Args:
        request: FastAPI request object
        credentials: HTTPBearer credentials from Authorization header
        user_service: User persistence
        user_cache: Cache of authenticated users

    Returns:
        UserInDB: The authenticated user object

    Raises:
        HTTPException: 401 if the token is invalid or expired, or the user no longer exists

    Example:
        ```python
        @router.get("/protected")
        async def protected_route(
            current_user: UserInDB = Depends(get_current_user)
        ):
            return {"user": current_user.username}
        ```
    """
    try:
        token_data = verify_token(credentials.credentials, token_type=ACCESS_TOKEN)

        if not token_data or not token_data.sub:
            logger.warning("Invalid token data: missing subject")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authentication credentials",
                headers={"WWW-Authenticate": "Bearer"},
            )

        user = await user_cache.get_or_populate(
            token_data.sub,
            lambda: user_service.get_user_by_id(token_data.sub),
        )

        if not user:
            logger.warning(f"User not found for token subject: {token_data.sub}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="User not found",
                headers={"WWW-Authenticate": "Bearer"},
            )

        # Store user_id in request state for rate limiting
        request.state.user_id = str(user.id)

        logger.debug(f"User authenticated successfully: {user.username}")

        return user

    except HTTPException:
        raise

    except Exception as e:
        logger.error(f"Error authenticating user: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def require_admin(current_user: UserInDB = Depends(get_current_user)) -> UserInDB:
    """
    Dependency that only lets administrators through.

    Raises:
        HTTPException: 403 if the authenticated user is not an admin
    """
    if not current_user.is_admin:
        logger.warning(f"Admin access denied for user: {current_user.username}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


def get_github_token(
    current_user: UserInDB = Depends(get_current_user),
    token_cipher: TokenCipher = Depends(get_token_cipher),
) -> str:
    """
    Decrypted GitHub token of the current user.

    Raises:
        HTTPException: 401 if no usable token is stored
    """
    token = token_cipher.decrypt(current_user.github_access_token)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="GitHub session expired. Please re-authenticate.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token
