"""
Conduit - FastAPI Application

Provides:
- Function dispatch for LLM tool calls (sync execution or scheduled jobs)
- Job progress polling
- API-key gateway in front of the entity CRUD capabilities
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from conduit.api.dependencies import drain_gateway
from conduit.api.middleware import RequestIDMiddleware, SecurityHeadersMiddleware, get_cors_origins
from conduit.api.routes import functions, gateway, health, jobs
from conduit.config import get_settings
from conduit.db.client import close_db, close_db_pool, init_db
from conduit.db.redis import close_redis
from conduit.kernel.http.errors import register_exception_handlers
from conduit.kernel.logging import configure_logging

configure_logging()

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan - startup and shutdown."""
    settings = get_settings()

    logger.info(
        "Starting Conduit",
        version="0.1.0",
        environment=settings.environment,
        gateway_target=settings.gateway_target_base_url,
    )
    await init_db()

    yield

    logger.info("Shutting down Conduit")
    await drain_gateway()
    await close_redis()
    await close_db_pool()
    await close_db()


app = FastAPI(
    title="Conduit",
    description="Function dispatch, background jobs and a rate-limited API gateway",
    version="0.1.0",
    lifespan=lifespan,
)

register_exception_handlers(app)

# Request ID tracking
app.add_middleware(RequestIDMiddleware)

# Security headers
app.add_middleware(SecurityHeadersMiddleware)

# CORS middleware (must be after security headers)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-RateLimit-Remaining", "X-RateLimit-Limit", "Retry-After"],
)

# Prometheus metrics endpoint
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(gateway.router)
app.include_router(functions.router, prefix="/api/v1")
app.include_router(jobs.router, prefix="/api/v1")
