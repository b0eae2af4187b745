"""
Authentication-related Pydantic models.

This module contains the JWT token payload and the token responses
returned by the GitHub OAuth flow.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class TokenPayload(BaseModel):
    """JWT token payload."""

    sub: str
    exp: datetime
    type: str


class TokenResponse(BaseModel):
    """JWT token pair issued after a successful GitHub login."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Access token lifetime in seconds")


class LoginResponse(BaseModel):
    """GitHub authorization redirect for the OAuth flow."""

    authorization_url: str
    state: str
