"""
Service providers for route handlers.

Each provider builds its service once, lazily, on the first request. Tests
replace them through `app.dependency_overrides`.
"""

from __future__ import annotations

from conduit.auth.api_key import ApiKeyAuthenticator, PostgresApiKeyStore
from conduit.auth.rate_limit import get_rate_limiter
from conduit.functions.builtin import build_builtin_registry
from conduit.functions.call_log import PostgresFunctionCallLog
from conduit.functions.definitions import PostgresFunctionDefinitionStore
from conduit.functions.dispatcher import Dispatcher
from conduit.gateway.service import ApiGateway
from conduit.jobs.handlers import build_default_job_handlers
from conduit.jobs.queue import JobQueue
from conduit.jobs.queue import get_job_queue as _get_postgres_job_queue

_dispatcher: Dispatcher | None = None
_gateway: ApiGateway | None = None
_job_kinds: list[str] | None = None


def get_job_queue() -> JobQueue:
    return _get_postgres_job_queue()


def get_job_kinds() -> list[str]:
    """Job kinds the worker has handlers for."""
    global _job_kinds
    if _job_kinds is None:
        _job_kinds = build_default_job_handlers(_get_postgres_job_queue()).kinds()
    return _job_kinds


def get_dispatcher() -> Dispatcher:
    global _dispatcher
    if _dispatcher is None:
        queue = _get_postgres_job_queue()
        _dispatcher = Dispatcher(
            build_builtin_registry(queue),
            queue,
            PostgresFunctionCallLog(),
            definition_store=PostgresFunctionDefinitionStore(),
        )
    return _dispatcher


def get_gateway() -> ApiGateway:
    global _gateway
    if _gateway is None:
        store = PostgresApiKeyStore()
        _gateway = ApiGateway(ApiKeyAuthenticator(store), get_rate_limiter(), store)
    return _gateway


async def drain_gateway() -> None:
    """Flush pending gateway usage updates if the gateway was ever built."""
    if _gateway is not None:
        await _gateway.drain()
