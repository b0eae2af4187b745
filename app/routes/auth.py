"""
Authentication routes for GitHub OAuth flow and JWT token management.

This module handles:
- GitHub OAuth login flow with state verification
- Token refresh mechanism
- User logout
- Current user information retrieval
"""

import logging
import secrets
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.security import HTTPAuthorizationCredentials

from app.core.cache import OAuthStateManager
from app.core.config import get_settings
from app.core.security import (
    REFRESH_TOKEN,
    TokenCipher,
    create_access_token,
    create_refresh_token,
    security,
    verify_token,
)
from app.middleware.rate_limiting import limiter
from app.models.auth import LoginResponse, TokenResponse
from app.models.user import UserInDB, UserResponse
from app.routes.dependencies import (
    get_current_user,
    get_github_service,
    get_state_manager,
    get_token_cipher,
    get_user_service,
)
from app.services.github import GitHubAPIError, GitHubService
from app.services.user import UserService

# Configure logging
logger = logging.getLogger(__name__)

# Router configuration
auth_router = APIRouter(prefix="/auth", tags=["Authentication"])


@auth_router.get(
    "/github/login",
    response_model=LoginResponse,
    summary="Initiate GitHub OAuth flow",
    status_code=status.HTTP_200_OK,
)
@limiter.limit(get_settings().rate_limit_auth)
async def github_login(
    request: Request,
    github_service: GitHubService = Depends(get_github_service),
    state_manager: OAuthStateManager = Depends(get_state_manager),
) -> LoginResponse:
    """
    Initiate the OAuth authentication flow with GitHub.

    Generates a single-use state token, stores it in Redis and returns the
    GitHub authorization URL the client should redirect to.

    Raises:
        HTTPException:
            - 429 if rate limit exceeded
            - 500 if state storage fails
    """
    state = secrets.token_urlsafe(32)

    if not await state_manager.create_state(state):
        logger.error("Failed to store OAuth state in Redis")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to initialize OAuth flow. Please try again.",
        )

    logger.info(f"Generated OAuth login URL with state: {state[:8]}...")
    return LoginResponse(authorization_url=github_service.get_authorization_url(state), state=state)


@auth_router.get(
    "/github/callback",
    response_model=TokenResponse,
    summary="GitHub OAuth callback handler",
    status_code=status.HTTP_200_OK,
)
@limiter.limit(get_settings().rate_limit_auth)
async def github_callback(
    request: Request,
    code: str = Query(..., description="OAuth authorization code from GitHub"),
    state: str = Query(..., description="State token for CSRF protection"),
    github_service: GitHubService = Depends(get_github_service),
    state_manager: OAuthStateManager = Depends(get_state_manager),
    token_cipher: TokenCipher = Depends(get_token_cipher),
    user_service: UserService = Depends(get_user_service),
) -> TokenResponse:
    """
    Handle the OAuth callback from GitHub after user authorization.

    This endpoint:
    1. Validates the state token to prevent CSRF attacks
    2. Exchanges the authorization code for a GitHub access token
    3. Fetches user information from GitHub
    4. Creates or updates the user, storing the GitHub token encrypted
    5. Generates JWT access and refresh tokens

    Raises:
        HTTPException:
            - 400 if state is invalid or expired
            - 401 if GitHub token exchange fails
            - 500 for unexpected errors
    """
    if not await state_manager.verify_and_consume_state(state):
        logger.warning(f"Invalid or expired OAuth state: {state[:8]}...")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired state parameter. Please try logging in again.",
        )

    try:
        logger.info("Exchanging authorization code for GitHub token")
        token_response = await github_service.exchange_code_for_token(code)
        github_token = token_response["access_token"]

        logger.info("Fetching user information from GitHub")
        github_user = await github_service.get_user_info(github_token)
    except GitHubAPIError as e:
        logger.warning(f"GitHub login failed: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Failed to obtain access token from GitHub",
        )

    user = await user_service.create_or_update_user(github_user, token_cipher.encrypt(github_token))
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Authentication failed. Please try again.",
        )

    logger.info(f"User authenticated successfully: {user.username} (ID: {user.id})")

    access_token, _ = create_access_token(str(user.id))
    refresh_token, _ = create_refresh_token(str(user.id))

    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=get_settings().jwt_access_token_expire_minutes * 60,
    )


@auth_router.post(
    "/refresh",
    response_model=Dict[str, str],
    summary="Refresh access token",
    status_code=status.HTTP_200_OK,
)
@limiter.limit("10/minute")
async def refresh_access_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    user_service: UserService = Depends(get_user_service),
) -> Dict[str, str]:
    """
    Issue a new access token from a valid refresh token.

    Raises:
        HTTPException: 401 if the refresh token is invalid or the user no longer exists
    """
    token_data = verify_token(credentials.credentials, token_type=REFRESH_TOKEN)

    try:
        user = await user_service.get_user_by_id(token_data.sub)
    except ValueError:
        user = None

    if user is None:
        logger.warning(f"Invalid session for user: {token_data.sub}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired. Please login again.",
        )

    access_token, _ = create_access_token(token_data.sub)
    logger.info(f"Access token refreshed for user: {token_data.sub}")

    return {"access_token": access_token, "token_type": "bearer"}


@auth_router.post(
    "/logout",
    response_model=Dict[str, str],
    summary="Logout user",
    status_code=status.HTTP_200_OK,
)
@limiter.limit("10/minute")
async def logout(
    request: Request,
    current_user: UserInDB = Depends(get_current_user),
) -> Dict[str, str]:
    """
    Logout the current user.

    JWT tokens are stateless; the client deletes them locally.
    """
    logger.info(f"User logged out: {current_user.username} (ID: {current_user.id})")
    return {"message": "Logged out successfully"}


@auth_router.get(
    "/me",
    response_model=UserResponse,
    summary="Get current user information",
    status_code=status.HTTP_200_OK,
)
@limiter.limit("30/minute")
async def get_current_user_info(
    request: Request,
    current_user: UserInDB = Depends(get_current_user),
) -> UserResponse:
    """Profile of the authenticated user."""
    logger.debug(f"User info requested: {current_user.username}")
    return UserResponse.from_db(current_user)
