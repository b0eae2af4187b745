"""Redis-backed short-lived state.

This module holds the two pieces of state the API keeps outside MongoDB:
single-use OAuth state tokens and a TTL cache of authenticated users. Both
live in Redis so that several application instances can share them.
"""

import logging
from typing import Awaitable, Callable, Optional

import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import RedisError

from app.core.config import get_settings
from app.models.user import UserInDB

logger = logging.getLogger(__name__)


class RedisBackedStore:
    """Base class owning (or borrowing) an async Redis client."""

    def __init__(self, redis_client: Optional[redis.Redis] = None) -> None:
        """
        Args:
            redis_client: Optional Redis client instance. If not provided,
                         a new client will be created from settings.
        """
        self._redis_client = redis_client
        self._owned_client = redis_client is None

    @property
    def redis_client(self) -> redis.Redis:
        """
        Get or create the Redis client instance.

        Raises:
            RuntimeError: If Redis client creation fails
        """
        if self._redis_client is None:
            try:
                settings = get_settings()
                self._redis_client = redis.from_url(
                    settings.redis_url,
                    max_connections=settings.redis_max_connections,
                    decode_responses=True,
                )
                logger.debug(f"Created new Redis client for {type(self).__name__}")
            except Exception as e:
                logger.error(f"Failed to create Redis client: {str(e)}")
                raise RuntimeError(f"Redis client initialization failed: {str(e)}")
        return self._redis_client

    async def close(self) -> None:
        """Close the Redis client if it was created by this instance."""
        if self._owned_client and self._redis_client is not None:
            await self._redis_client.close()
            self._redis_client = None
            logger.debug("Closed Redis client")

    async def health_check(self) -> bool:
        """Check if the Redis connection is healthy."""
        try:
            await self.redis_client.ping()
            return True
        except RedisError as e:
            logger.error(f"Redis health check failed: {str(e)}")
            return False


class OAuthStateManager(RedisBackedStore):
    """
    Single-use OAuth state tokens with automatic expiration.

    Attributes:
        OAUTH_STATE_TTL: Time-to-live for state tokens in seconds (10 minutes)
        STATE_KEY_PREFIX: Redis key prefix for OAuth states
    """

    OAUTH_STATE_TTL: int = 600
    STATE_KEY_PREFIX: str = "oauth_state:"

    def _get_key(self, state: str) -> str:
        return f"{self.STATE_KEY_PREFIX}{state}"

    async def create_state(self, state: str) -> bool:
        """
        Store an OAuth state token.

        Returns:
            bool: True if successfully stored, False otherwise
        """
        try:
            await self.redis_client.setex(self._get_key(state), self.OAUTH_STATE_TTL, "1")
            logger.debug(f"Created OAuth state: {state[:8]}... (expires in {self.OAUTH_STATE_TTL}s)")
            return True
        except RedisError as e:
            logger.error(f"Redis error creating state {state[:8]}...: {str(e)}")
            return False

    async def verify_and_consume_state(self, state: str) -> bool:
        """
        Verify that an OAuth state exists and atomically consume it.

        Returns:
            bool: True if state was valid and consumed, False otherwise
        """
        try:
            deleted_count = await self.redis_client.delete(self._get_key(state))
        except RedisError as e:
            logger.error(f"Redis error verifying state {state[:8]}...: {str(e)}")
            return False

        if deleted_count > 0:
            logger.debug(f"Verified and consumed OAuth state: {state[:8]}...")
            return True

        logger.warning(f"OAuth state not found or already consumed: {state[:8]}...")
        return False


class UserCache(RedisBackedStore):
    """
    TTL cache for authenticated user lookups.

    Every authenticated request resolves its user; this cache keeps the
    serialized record in Redis for `ttl` seconds. Writers must call
    `invalidate` after changing a user so stale records are never served
    past the next request. Redis failures degrade to a direct load.
    """

    KEY_PREFIX: str = "user:"

    def __init__(self, redis_client: Optional[redis.Redis] = None, ttl: Optional[int] = None) -> None:
        super().__init__(redis_client)
        self.ttl = ttl if ttl is not None else get_settings().user_cache_ttl_seconds

    def _get_key(self, user_id: str) -> str:
        return f"{self.KEY_PREFIX}{user_id}"

    async def get_or_populate(
        self,
        user_id: str,
        loader: Callable[[], Awaitable[Optional[UserInDB]]],
    ) -> Optional[UserInDB]:
        """
        Return the cached user or load and cache it.

        Args:
            user_id: String ObjectId of the user
            loader: Coroutine factory that loads the user from the database

        Returns:
            The user, or None if the loader found nothing (misses are not cached)
        """
        key = self._get_key(user_id)

        try:
            cached = await self.redis_client.get(key)
            if cached:
                return UserInDB.model_validate_json(cached)
        except (RedisError, ValidationError) as e:
            logger.warning(f"User cache read failed for {user_id}: {str(e)}")

        user = await loader()
        if user is None:
            return None

        try:
            await self.redis_client.setex(key, self.ttl, user.model_dump_json(by_alias=True))
        except RedisError as e:
            logger.warning(f"User cache write failed for {user_id}: {str(e)}")

        return user

    async def invalidate(self, user_id: str) -> None:
        """Drop a cached user record."""
        try:
            await self.redis_client.delete(self._get_key(user_id))
            logger.debug(f"Invalidated cached user {user_id}")
        except RedisError as e:
            logger.warning(f"User cache invalidation failed for {user_id}: {str(e)}")
