"""Health check endpoints."""

import structlog
from fastapi import APIRouter, Response
from sqlalchemy import text

from conduit.db.client import get_db_session
from conduit.db.redis import redis_healthcheck
from conduit.kernel.time import utc_now

router = APIRouter()
logger = structlog.get_logger()

_startup_time = utc_now()


@router.get("/health")
async def health_check():
    """Returns 200 while the process is serving requests."""
    now = utc_now()
    return {
        "status": "healthy",
        "service": "conduit",
        "version": "0.1.0",
        "timestamp": now.isoformat(),
        "uptime_seconds": (now - _startup_time).total_seconds(),
    }


@router.get("/ready")
async def readiness_check(response: Response):
    """
    Readiness check endpoint.

    Postgres backs the queue, the registry and the API keys; Redis backs the
    rate limiter. Redis being down degrades readiness but the limiter still
    fails open.
    """
    checks = {
        "postgres": False,
        "redis": False,
    }

    try:
        async with get_db_session() as session:
            await session.execute(text("SELECT 1"))
            checks["postgres"] = True
    except Exception as e:
        logger.warning("PostgreSQL health check failed", error=str(e))

    redis_status = await redis_healthcheck()
    checks["redis"] = bool(redis_status.get("ok"))
    if not checks["redis"]:
        logger.warning("Redis health check failed", error=redis_status.get("error"))

    all_healthy = all(checks.values())
    if not all_healthy:
        response.status_code = 503

    return {
        "status": "ready" if all_healthy else "degraded",
        "checks": checks,
        "timestamp": utc_now().isoformat(),
    }


@router.get("/live")
async def liveness_check():
    return {"status": "alive"}
