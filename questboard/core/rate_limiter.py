"""Rate limiting for the verification endpoints using Redis fixed windows."""

import logging
from datetime import UTC, datetime

from fastapi import HTTPException

from questboard.core.config import Constants, settings
from questboard.core.redis_client import redis_client


logger = logging.getLogger(__name__)


class RateLimiter:
    """Rate limiter using a Redis counter per time window."""

    async def check_rate_limit(
        self,
        scope: str,
        identifier: str,
        limit: int,
        window_seconds: int,
    ) -> None:
        """Check if request is within rate limit.

        - Increment counter for the current window
        - Set expiry on first increment
        - Raise exception if limit exceeded

        Args:
            scope: Rate limit scope (e.g., 'verification')
            identifier: Unique identifier (e.g., user_id)
            limit: Maximum requests allowed
            window_seconds: Time window in seconds

        Raises:
            HTTPException: 429 if rate limit is exceeded
        """
        if not redis_client.is_available:
            logger.debug("rate_limit_check_skipped", extra={"reason": "redis_unavailable"})
            return

        now = datetime.now(UTC)
        window_start = int(now.timestamp()) // window_seconds
        key = f"ratelimit:{scope}:{identifier}:{window_start}"

        count = await redis_client.increment(key)
        if count is None:
            logger.warning("rate_limit_check_failed", extra={"reason": "redis_increment_failed"})
            return

        if count == 1:
            await redis_client.expire(key, window_seconds)

        if count > limit:
            retry_after = window_seconds - (int(now.timestamp()) % window_seconds)
            logger.warning(
                "rate_limit_exceeded",
                extra={
                    "scope": scope,
                    "identifier": identifier,
                    "count": count,
                    "limit": limit,
                    "retry_after": retry_after,
                },
            )
            raise HTTPException(
                status_code=429,
                detail="Too many requests",
                headers={
                    "Retry-After": str(retry_after),
                    "X-RateLimit-Limit": str(limit),
                },
            )

    async def check_verification_rate_limit(self, user_id: str) -> None:
        """Per-user limit on proof submissions, which each cost a model call."""
        await self.check_rate_limit(
            scope="verification",
            identifier=user_id,
            limit=settings.verification_rate_limit_per_hour,
            window_seconds=Constants.VERIFICATION_RATE_LIMIT_WINDOW_SECONDS,
        )


rate_limiter = RateLimiter()
