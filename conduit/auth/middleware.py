"""
FastAPI authentication dependencies for the internal API.

The dispatch and job polling endpoints are called by trusted services that
share `internal_service_token`. The acting owner is passed in `X-Owner-ID`.
The public gateway authenticates with API keys instead (see `conduit.gateway`).
"""

import secrets
from dataclasses import dataclass

import structlog
from fastapi import Header

from conduit.config import get_settings
from conduit.kernel.errors import UnauthorizedError

logger = structlog.get_logger()

# Headers
INTERNAL_SERVICE_HEADER = "X-Internal-Service-Token"
OWNER_ID_HEADER = "X-Owner-ID"


@dataclass(frozen=True)
class InternalCaller:
    """Context for an authenticated internal request."""

    owner_id: str | None = None


async def require_internal_caller(
    x_internal_service_token: str | None = Header(default=None, alias=INTERNAL_SERVICE_HEADER),
    x_owner_id: str | None = Header(default=None, alias=OWNER_ID_HEADER),
) -> InternalCaller:
    """Validate the internal service token and return the caller context."""
    expected = get_settings().internal_service_token
    if not x_internal_service_token or not secrets.compare_digest(
        x_internal_service_token.encode("utf-8"), expected.encode("utf-8")
    ):
        logger.warning("Internal service token rejected", has_token=bool(x_internal_service_token))
        raise UnauthorizedError(message="Invalid internal service token")

    return InternalCaller(owner_id=x_owner_id or None)
