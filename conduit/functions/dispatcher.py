"""
Function call dispatcher.

Resolves a named call, validates its arguments, then either runs the handler
in-process (sync functions) or enqueues a job and returns its id immediately
(async functions). Every attempt leaves exactly one call log row.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import BaseModel

from conduit.config import Settings, get_settings
from conduit.functions.call_log import CallStatus, FunctionCallLog
from conduit.functions.definitions import FunctionDefinitionStore
from conduit.functions.registry import ExecutionMode, FunctionDefinition, FunctionRegistry
from conduit.functions.schema import ArgumentValidationError, validate_arguments
from conduit.jobs.models import EnqueueJobRequest
from conduit.jobs.queue import JobQueue
from conduit.kernel.errors import ConduitError, InfrastructureError, NotFoundError
from conduit.kernel.serialization import to_jsonable
from conduit.kernel.time import utc_now
from conduit.monitoring.metrics import get_metrics

logger = structlog.get_logger()


@dataclass(frozen=True)
class CallerContext:
    """Who is calling. Threaded through to sync handlers."""

    owner_id: str | None = None
    llm_call_log_id: str | None = None
    priority: int | None = None


class DispatchResult(BaseModel):
    success: bool
    result: Any = None
    error: str | None = None
    job_id: str | None = None
    details: dict[str, Any] | None = None


def _parse_arguments(arguments: Any) -> Any:
    # Providers commonly deliver tool arguments as a JSON string.
    if isinstance(arguments, str):
        try:
            return json.loads(arguments) if arguments.strip() else {}
        except json.JSONDecodeError as exc:
            raise ArgumentValidationError.from_message(f"Arguments are not valid JSON: {exc.msg}") from exc
    if arguments is None:
        return {}
    return arguments


class Dispatcher:
    def __init__(
        self,
        registry: FunctionRegistry,
        queue: JobQueue,
        call_log: FunctionCallLog,
        *,
        definition_store: FunctionDefinitionStore | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.registry = registry
        self.queue = queue
        self.call_log = call_log
        self.definition_store = definition_store
        self.settings = settings or get_settings()

    async def registry_for(self, owner_id: str | None) -> FunctionRegistry:
        """The base registry plus the owner's stored definitions."""
        if self.definition_store is None or owner_id is None:
            return self.registry
        try:
            extra = await self.definition_store.load(owner_id)
        except Exception as exc:
            logger.warning(
                "Failed to load stored function definitions",
                owner_id=owner_id,
                error=str(exc),
            )
            return self.registry
        return self.registry.snapshot(extra)

    async def dispatch(
        self,
        name: str,
        arguments: Any,
        caller: CallerContext | None = None,
    ) -> DispatchResult:
        caller = caller or CallerContext()
        started = time.monotonic()
        registry = await self.registry_for(caller.owner_id)

        try:
            definition = registry.resolve(name, caller.owner_id)
        except NotFoundError as exc:
            log_id = await self._record_started(name, arguments, None, caller)
            result = DispatchResult(success=False, error=exc.message)
            await self._record_finished(log_id, result, started, None)
            logger.info("Function not found", function_name=name, owner_id=caller.owner_id)
            return result

        mode = definition.execution_mode.value
        log_id = await self._record_started(name, arguments, mode, caller)

        try:
            validated = validate_arguments(definition.parameters, _parse_arguments(arguments))
        except ArgumentValidationError as exc:
            result = DispatchResult(
                success=False,
                error=exc.message,
                details={"errors": [e.to_dict() for e in exc.errors]},
            )
            await self._record_finished(log_id, result, started, definition)
            logger.info(
                "Function arguments rejected",
                function_name=name,
                owner_id=caller.owner_id,
                errors=len(exc.errors),
            )
            return result

        if definition.execution_mode is ExecutionMode.SYNC:
            result = await self._run_sync(definition, validated, caller)
        else:
            result = await self._enqueue(definition, validated, caller)

        await self._record_finished(log_id, result, started, definition)
        return result

    async def _run_sync(
        self,
        definition: FunctionDefinition,
        arguments: dict[str, Any],
        caller: CallerContext,
    ) -> DispatchResult:
        try:
            value = to_jsonable(await definition.handler(arguments, caller))
        except Exception as exc:
            error = exc.message if isinstance(exc, ConduitError) else (str(exc) or exc.__class__.__name__)
            logger.warning(
                "Function handler failed",
                function_name=definition.name,
                owner_id=caller.owner_id,
                error=error,
            )
            return DispatchResult(success=False, error=error)
        return DispatchResult(success=True, result=value)

    async def _enqueue(
        self,
        definition: FunctionDefinition,
        arguments: dict[str, Any],
        caller: CallerContext,
    ) -> DispatchResult:
        priority = (
            caller.priority if caller.priority is not None else self.settings.dispatch_default_priority
        )
        try:
            job_id = await self.queue.enqueue(
                EnqueueJobRequest(
                    kind=definition.target_kind,
                    payload=arguments,
                    priority=priority,
                    scheduled_at=utc_now(),
                    owner_id=caller.owner_id,
                )
            )
        except InfrastructureError as exc:
            logger.warning(
                "Function could not be scheduled",
                function_name=definition.name,
                owner_id=caller.owner_id,
                error=exc.message,
            )
            return DispatchResult(
                success=False,
                error=f"Function '{definition.name}' could not be scheduled: {exc.message}",
            )

        return DispatchResult(
            success=True,
            result={
                "message": f"Function '{definition.name}' scheduled for async execution",
                "job_id": job_id,
                "kind": definition.target_kind,
            },
            job_id=job_id,
        )

    async def _record_started(
        self,
        name: str,
        arguments: Any,
        execution_mode: str | None,
        caller: CallerContext,
    ) -> str | None:
        try:
            return await self.call_log.record_started(
                function_name=name,
                arguments=to_jsonable(arguments),
                execution_mode=execution_mode,
                owner_id=caller.owner_id,
                llm_call_log_id=caller.llm_call_log_id,
            )
        except Exception as exc:
            # Logging is observational; the dispatch goes ahead without a row.
            logger.error("Failed to write function call log", function_name=name, error=str(exc))
            return None

    async def _record_finished(
        self,
        log_id: str | None,
        result: DispatchResult,
        started: float,
        definition: FunctionDefinition | None,
    ) -> None:
        duration = time.monotonic() - started
        status = CallStatus.SUCCESS if result.success else CallStatus.FAILED
        get_metrics().track_dispatch(
            function_name=definition.name if definition else "unknown",
            execution_mode=definition.execution_mode.value if definition else None,
            status=status.value,
            duration=duration,
        )
        if log_id is None:
            return
        try:
            await self.call_log.record_finished(
                log_id,
                status=status,
                result=result.result,
                error_message=result.error,
                job_id=result.job_id,
                execution_time_ms=int(duration * 1000),
            )
        except Exception as exc:
            logger.error("Failed to finish function call log", log_id=log_id, error=str(exc))
