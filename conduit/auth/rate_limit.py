"""
Rate Limiting for the gateway.

Fixed-window counters in Redis: one counter per (key, window kind, window
start). A burst at a window edge can admit up to twice the limit across two
adjacent windows.
"""

import math
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, NamedTuple

import structlog
from redis.exceptions import RedisError

from conduit.kernel.time import truncate_to_window, utc_now

logger = structlog.get_logger()


class WindowKind(str, Enum):
    MINUTE = "minute"
    DAY = "day"

    @property
    def seconds(self) -> int:
        return 60 if self is WindowKind.MINUTE else 86400


class RateLimitResult(NamedTuple):
    """Result of a rate limit check."""

    allowed: bool
    remaining: int
    retry_after_seconds: int  # Seconds until the current window ends
    limit: int
    window_start: datetime


class FixedWindowRateLimiter:
    """
    Fixed-window rate limiter using Redis INCR + EXPIRE.

    The increment is kept even when the request is rejected, so a caller that
    keeps hammering stays limited until the window rolls over.

    If Redis is unavailable, allows requests (fail open).
    """

    def __init__(
        self,
        redis_client=None,
        key_prefix: str = "ratelimit:",
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize rate limiter.

        Args:
            redis_client: Optional Redis client. If None, uses get_redis().
            key_prefix: Prefix for Redis keys
            clock: Source of the current time (UTC)
        """
        self._redis = redis_client
        self.key_prefix = key_prefix
        self._clock = clock

    async def _get_redis(self):
        """Get or create Redis connection."""
        if self._redis is None:
            try:
                from conduit.db.redis import get_redis

                self._redis = await get_redis()
            except (RedisError, OSError) as e:
                logger.warning("Redis unavailable for rate limiting", error=str(e))
                return None
        return self._redis

    def counter_key(self, key_id: str, window: WindowKind, window_start: datetime) -> str:
        return f"{self.key_prefix}{key_id}:{window.value}:{int(window_start.timestamp())}"

    async def check_and_increment(
        self,
        key_id: str,
        window: WindowKind,
        limit: int,
        now: datetime | None = None,
    ) -> RateLimitResult:
        """
        Count this request against the window and decide whether it is allowed.

        Args:
            key_id: API key ID
            window: Which fixed window to count against
            limit: Maximum requests allowed per window
            now: Override for the current time

        Returns:
            RateLimitResult; `allowed` is False once the post-increment count exceeds `limit`
        """
        now = now or self._clock()
        window_start = truncate_to_window(now, window.seconds)
        window_end = window_start + timedelta(seconds=window.seconds)
        retry_after = max(1, math.ceil((window_end - now).total_seconds()))

        redis = await self._get_redis()
        if redis is None:
            # Fail open - allow request if Redis unavailable
            return RateLimitResult(
                allowed=True,
                remaining=limit,
                retry_after_seconds=retry_after,
                limit=limit,
                window_start=window_start,
            )

        counter_key = self.counter_key(key_id, window, window_start)
        try:
            async with redis.pipeline(transaction=True) as pipe:
                pipe.incr(counter_key)
                # Expire after the window closes; a late expire only wastes memory.
                pipe.expire(counter_key, window.seconds * 2)
                results = await pipe.execute()
        except (RedisError, OSError) as e:
            logger.warning(
                "Rate limit check failed, allowing request",
                key_id=key_id,
                window=window.value,
                error=str(e),
            )
            return RateLimitResult(
                allowed=True,
                remaining=limit,
                retry_after_seconds=retry_after,
                limit=limit,
                window_start=window_start,
            )

        count = int(results[0])
        allowed = count <= limit
        if not allowed:
            logger.info(
                "Rate limit exceeded",
                key_id=key_id,
                window=window.value,
                count=count,
                limit=limit,
            )

        return RateLimitResult(
            allowed=allowed,
            remaining=max(0, limit - count),
            retry_after_seconds=retry_after,
            limit=limit,
            window_start=window_start,
        )


# Global rate limiter instance
_rate_limiter: FixedWindowRateLimiter | None = None


def get_rate_limiter() -> FixedWindowRateLimiter:
    """Get or create the global rate limiter instance."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = FixedWindowRateLimiter()
    return _rate_limiter
