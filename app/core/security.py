"""Security utilities for authentication and token storage."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from bson import ObjectId
from cryptography.fernet import Fernet, InvalidToken
from fastapi import HTTPException, status
from fastapi.security import HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError

from app.core.config import get_settings
from app.models.auth import TokenPayload

logger = logging.getLogger(__name__)

security = HTTPBearer()


ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"


def _credentials_error(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _issue_token(user_id: str, token_type: str, lifetime: timedelta) -> Tuple[str, datetime]:
    settings = get_settings()
    expire = datetime.now(timezone.utc) + lifetime
    claims = {"sub": user_id, "exp": expire, "type": token_type}
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm), expire


def create_access_token(user_id: str) -> Tuple[str, datetime]:
    """
    Issue the short-lived session token sent with every API request.

    Args:
        user_id: ObjectId of the user as a string

    Returns:
        tuple: (encoded token, expiration datetime)
    """
    minutes = get_settings().jwt_access_token_expire_minutes
    return _issue_token(user_id, ACCESS_TOKEN, timedelta(minutes=minutes))


def create_refresh_token(user_id: str) -> Tuple[str, datetime]:
    """Issue the long-lived token accepted only by POST /auth/refresh."""
    days = get_settings().jwt_refresh_token_expire_days
    return _issue_token(user_id, REFRESH_TOKEN, timedelta(days=days))


def verify_token(token: str, token_type: str = ACCESS_TOKEN) -> TokenPayload:
    """
    Decode a session token issued by this service.

    The token must carry the expected type and a user ObjectId as subject,
    so a refresh token is never accepted in place of an access token.

    Raises:
        HTTPException: 401 if the token is invalid, expired or of the wrong type
    """
    settings = get_settings()

    try:
        claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        payload = TokenPayload(**claims)
    except (JWTError, ValidationError) as e:
        logger.warning(f"Token verification failed: {e}")
        raise _credentials_error("Could not validate credentials")

    if payload.type != token_type:
        logger.warning(f"Rejected {payload.type} token where {token_type} was expected")
        raise _credentials_error(f"Invalid token type. Expected {token_type}")

    if not ObjectId.is_valid(payload.sub):
        logger.warning(f"Token subject is not a user id: {payload.sub}")
        raise _credentials_error("Could not validate credentials")

    return payload


class TokenCipher:
    """
    Symmetric encryption for GitHub access tokens stored in the database.

    Tokens are encrypted with Fernet so that a database dump does not leak
    usable GitHub credentials.
    """

    def __init__(self, key: Optional[str] = None) -> None:
        """
        Initialize the cipher.

        Args:
            key: Fernet key. Defaults to the configured token_encryption_key.
        """
        key = key or get_settings().token_encryption_key
        self._fernet = Fernet(key.encode())

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a plaintext token."""
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: Optional[str]) -> Optional[str]:
        """
        Decrypt an encrypted token.

        Returns:
            The plaintext token, or None if the value is empty or cannot be decrypted
        """
        if not ciphertext:
            return None

        try:
            return self._fernet.decrypt(ciphertext.encode()).decode()
        except InvalidToken:
            logger.warning("Stored GitHub token could not be decrypted")
            return None
