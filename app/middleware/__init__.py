"""Middleware components."""

from app.middleware.rate_limiting import (
    RateLimitHeadersMiddleware,
    get_user_identifier,
    limiter,
)
from app.middleware.security import SecurityHeadersMiddleware

__all__ = [
    "RateLimitHeadersMiddleware",
    "SecurityHeadersMiddleware",
    "get_user_identifier",
    "limiter",
]
