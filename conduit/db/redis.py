"""Redis client helpers (async).

Used for the gateway's fixed-window rate limit counters. If Redis is
unavailable, the limiter fails open and logs a warning.
"""

from __future__ import annotations

from typing import Any

import structlog
from redis.asyncio import Redis

from conduit.config import get_settings

logger = structlog.get_logger()

_redis: Redis | None = None


async def get_redis() -> Redis:
    """
    Return a singleton Redis client.

    Raises if a connection cannot be established.
    """
    global _redis
    if _redis is not None:
        return _redis

    settings = get_settings()
    client = Redis.from_url(str(settings.redis_url), decode_responses=True)
    try:
        await client.ping()
    except Exception as exc:
        await client.aclose()
        logger.warning("Failed to connect to Redis", error=str(exc))
        raise

    _redis = client
    return _redis


async def close_redis() -> None:
    """Close the singleton Redis client."""
    global _redis
    if _redis is None:
        return
    try:
        await _redis.aclose()
    finally:
        _redis = None


async def redis_healthcheck() -> dict[str, Any]:
    """Health probe used by the readiness endpoint."""
    try:
        client = await get_redis()
        ok = await client.ping()
        return {"ok": bool(ok)}
    except Exception as exc:
        return {"ok": False, "error": str(exc)}
