"""
Public API gateway.

Authenticates external callers by API key, enforces entity and operation
scope plus per-minute and per-day quotas, then proxies the request to the
entity's CRUD capability at `{gateway_target_base_url}/{table_name}-crud`.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from conduit.auth.api_key import ApiKeyAuthenticator, ApiKeyRecord, ApiKeyStore
from conduit.auth.rate_limit import FixedWindowRateLimiter, RateLimitResult, WindowKind
from conduit.config import Settings, get_settings
from conduit.kernel.errors import (
    ForbiddenError,
    RateLimitedError,
    UnauthorizedError,
    UpstreamError,
    ValidationError,
)
from conduit.monitoring.metrics import get_metrics

logger = structlog.get_logger()

GATEWAY_OPERATIONS = ("list", "get", "create", "update", "delete")

# Operations whose target row is identified by `?id=` on GET requests.
_ID_OPERATIONS = {"get", "delete"}


@dataclass(frozen=True)
class GatewayRequest:
    entity: str
    operation: str
    method: str
    api_key: str | None
    query: dict[str, str] = field(default_factory=dict)
    body: dict[str, Any] | None = None


@dataclass(frozen=True)
class GatewayResponse:
    status_code: int
    body: Any
    headers: dict[str, str]


def build_proxy_body(request: GatewayRequest) -> dict[str, Any]:
    """The JSON body sent to the CRUD capability."""
    proxy_body: dict[str, Any] = {"operation": request.operation}
    if request.method.upper() == "GET":
        record_id = request.query.get("id")
        if request.operation in _ID_OPERATIONS and record_id:
            proxy_body["id"] = record_id
        if request.operation == "list":
            filters = {k: v for k, v in request.query.items() if k != "id"}
            if filters:
                proxy_body["filters"] = filters
    elif request.body:
        proxy_body = {"operation": request.operation, **request.body}
        # The path decides the operation, never the body.
        proxy_body["operation"] = request.operation
    return proxy_body


class ApiGateway:
    def __init__(
        self,
        authenticator: ApiKeyAuthenticator,
        rate_limiter: FixedWindowRateLimiter,
        key_store: ApiKeyStore,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.authenticator = authenticator
        self.rate_limiter = rate_limiter
        self.key_store = key_store
        self.settings = settings or get_settings()
        self._transport = transport
        self._background_tasks: set[asyncio.Task] = set()

    async def handle(self, request: GatewayRequest) -> GatewayResponse:
        """
        Run the gateway pipeline. Each stage short-circuits by raising:

        400 unknown operation, 401 missing/invalid key, 403 entity or operation
        not allowed, 429 quota exceeded, 502 capability unreachable.
        """
        if request.operation not in GATEWAY_OPERATIONS:
            raise ValidationError(
                code="gateway.invalid_operation",
                message=(
                    f"Invalid operation: {request.operation}. "
                    f"Valid: {', '.join(GATEWAY_OPERATIONS)}"
                ),
                status_code=400,
            )

        if not request.api_key:
            raise UnauthorizedError(
                code="auth.missing_api_key",
                message=f"Missing {self.settings.gateway_api_key_header} header",
            )

        record = await self.authenticator.authenticate(request.api_key)
        self._check_scope(record, request)
        quota = await self._check_quota(record)

        status_code, payload = await self._proxy(record, build_proxy_body(request))
        self._record_usage_in_background(record.id)

        headers = {
            "X-RateLimit-Remaining": str(quota.remaining),
            "X-RateLimit-Limit": str(record.rate_limit_per_minute),
        }
        return GatewayResponse(status_code=status_code, body=payload, headers=headers)

    def _check_scope(self, record: ApiKeyRecord, request: GatewayRequest) -> None:
        if record.entity_name.lower() != request.entity.lower():
            logger.warning(
                "API key used for another entity",
                key_id=record.id,
                entity=request.entity,
            )
            raise ForbiddenError(
                code="gateway.entity_forbidden",
                message=f"API key not authorized for entity: {request.entity}",
            )
        if request.operation not in record.allowed_operations:
            raise ForbiddenError(
                code="gateway.operation_forbidden",
                message=(
                    f"Operation not allowed: {request.operation}. "
                    f"Allowed: {', '.join(record.allowed_operations)}"
                ),
            )

    async def _check_quota(self, record: ApiKeyRecord) -> RateLimitResult:
        """Per-minute check first, then per-day. Returns the minute result."""
        minute = await self.rate_limiter.check_and_increment(
            record.id, WindowKind.MINUTE, record.rate_limit_per_minute
        )
        if not minute.allowed:
            get_metrics().track_rate_limited(WindowKind.MINUTE.value)
            raise RateLimitedError(retry_after_seconds=minute.retry_after_seconds)

        day = await self.rate_limiter.check_and_increment(
            record.id, WindowKind.DAY, record.rate_limit_per_day
        )
        if not day.allowed:
            get_metrics().track_rate_limited(WindowKind.DAY.value)
            raise RateLimitedError(retry_after_seconds=day.retry_after_seconds)

        return minute

    async def _proxy(self, record: ApiKeyRecord, body: dict[str, Any]) -> tuple[int, Any]:
        target_url = f"{self.settings.gateway_target_base_url.rstrip('/')}/{record.table_name}-crud"
        headers = {"Content-Type": "application/json"}
        if self.settings.gateway_service_token:
            headers["Authorization"] = f"Bearer {self.settings.gateway_service_token}"

        try:
            async with httpx.AsyncClient(
                timeout=self.settings.gateway_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(target_url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            logger.error(
                "Gateway upstream unreachable",
                target_url=target_url,
                key_id=record.id,
                error=str(exc),
            )
            raise UpstreamError(
                code="gateway.upstream_unreachable",
                message=f"Capability {record.table_name}-crud is unreachable",
            ) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            logger.error(
                "Gateway upstream returned non-JSON body",
                target_url=target_url,
                status_code=response.status_code,
            )
            raise UpstreamError(
                code="gateway.upstream_invalid_response",
                message=f"Capability {record.table_name}-crud returned an invalid response",
            ) from exc

        return response.status_code, payload

    def _record_usage_in_background(self, key_id: str) -> None:
        task = asyncio.create_task(self._record_usage(key_id))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _record_usage(self, key_id: str) -> None:
        try:
            await self.key_store.record_usage(key_id)
        except Exception as exc:
            logger.warning("Failed to update API key usage stats", key_id=key_id, error=str(exc))

    async def drain(self) -> None:
        """Wait for pending usage updates (shutdown and tests)."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)
