"""Rate limiting for the HTTP API.

Requests are limited per authenticated user when the user is known and
per client IP otherwise. Limits use slowapi's in-memory storage.
"""

import logging
from typing import Callable

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.core.config import get_settings

logger = logging.getLogger(__name__)


def get_user_identifier(request: Request) -> str:
    """
    Rate limit key of a request.

    The user id is set on request.state by get_current_user; anonymous
    requests fall back to the client address.
    """
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"

    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=get_user_identifier,
    default_limits=[get_settings().rate_limit_default],
    enabled=get_settings().rate_limit_enabled,
)


class RateLimitHeadersMiddleware(BaseHTTPMiddleware):
    """Adds X-RateLimit-* headers for endpoints that carry a limit."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        view_rate_limit = getattr(request.state, "view_rate_limit", None)
        if view_rate_limit is None:
            return response

        try:
            limit_item, keys = view_rate_limit
            reset_at, remaining = limiter.limiter.get_window_stats(limit_item, *keys)
        except (TypeError, ValueError) as e:
            logger.debug(f"Rate limit state unavailable: {e}")
            return response

        response.headers["X-RateLimit-Limit"] = str(limit_item.amount)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = str(int(reset_at))
        return response
