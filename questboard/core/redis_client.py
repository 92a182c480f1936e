"""Redis client used for request rate limiting."""

import logging
from datetime import UTC, datetime
from typing import Any

from redis.asyncio import Redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError

from questboard.core.config import Constants, settings


logger = logging.getLogger(__name__)


class RedisClient:
    """Async Redis client wrapper with connection pooling.

    Redis is optional: when ``REDIS_URL`` is unset, or the server misbehaves,
    every operation degrades to a no-op result instead of raising.
    """

    def __init__(self, url: str | None = None) -> None:
        """Initialize Redis client."""
        self._client: Redis | None = None
        self._pool: ConnectionPool | None = None
        redis_url = url if url is not None else settings.redis_url
        self._enabled = bool(redis_url)

        self._last_successful_operation: datetime | None = None
        self._failure_count = 0

        if self._enabled and redis_url:
            try:
                self._pool = ConnectionPool.from_url(
                    redis_url,
                    decode_responses=True,
                    max_connections=Constants.REDIS_MAX_CONNECTIONS,
                )
                self._client = Redis(connection_pool=self._pool)
                logger.info("Redis client initialized")
            except (RedisError, ValueError) as e:
                logger.warning("Failed to initialize Redis client: %s. Running without rate limiting.", e)
                self._enabled = False
                self._client = None
                self._pool = None
        else:
            logger.info("Redis URL not configured. Running without rate limiting.")

    @property
    def is_available(self) -> bool:
        """Check if Redis is available."""
        return self._enabled and self._client is not None

    def get_health_status(self) -> dict[str, Any]:
        """Get Redis health status for the health endpoint."""
        return {
            "enabled": self._enabled,
            "connected": self.is_available,
            "last_successful_operation": self._last_successful_operation.isoformat()
            if self._last_successful_operation
            else None,
            "failure_count": self._failure_count,
        }

    def _record_success(self) -> None:
        self._last_successful_operation = datetime.now(UTC)

    def _record_failure(self) -> None:
        self._failure_count += 1

    async def increment(self, key: str) -> int | None:
        """Increment a counter key.

        Returns:
            The new value, or None if Redis is unavailable or errored
        """
        if not self.is_available or not self._client:
            return None

        try:
            value = await self._client.incr(key)
            self._record_success()
            return int(value)
        except RedisError as e:
            self._record_failure()
            logger.warning("Redis INCR error for key %s: %s", key, e)
            return None

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        """Set a TTL on a key. Returns True if successful."""
        if not self.is_available or not self._client:
            return False

        try:
            await self._client.expire(key, ttl_seconds)
            self._record_success()
            return True
        except RedisError as e:
            self._record_failure()
            logger.warning("Redis EXPIRE error for key %s: %s", key, e)
            return False

    async def ping(self) -> bool:
        """Check connectivity to Redis."""
        if not self.is_available or not self._client:
            return False

        try:
            result = await self._client.ping()
            self._record_success()
            return bool(result)
        except RedisError as e:
            self._record_failure()
            logger.warning("Redis PING error: %s", e)
            return False

    async def close(self) -> None:
        """Release pooled connections."""
        if self._client is not None:
            await self._client.aclose()


# Global Redis client instance
redis_client = RedisClient()
