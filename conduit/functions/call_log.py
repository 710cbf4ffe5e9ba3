"""Function call log (`function_call_logs` table).

One row per dispatch attempt. The row is inserted as `executing` before the
function runs and updated exactly once with the outcome.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol

from conduit.db.port import RawQueryPool, get_raw_query_pool
from conduit.kernel.ids import new_prefixed_id
from conduit.kernel.time import utc_now


class CallStatus(str, Enum):
    EXECUTING = "executing"
    SUCCESS = "success"
    FAILED = "failed"


class FunctionCallLog(Protocol):
    async def record_started(
        self,
        *,
        function_name: str,
        arguments: Any,
        execution_mode: str | None,
        owner_id: str | None,
        llm_call_log_id: str | None,
    ) -> str: ...

    async def record_finished(
        self,
        log_id: str,
        *,
        status: CallStatus,
        result: Any = None,
        error_message: str | None = None,
        job_id: str | None = None,
        execution_time_ms: int | None = None,
        execution_mode: str | None = None,
    ) -> bool: ...


class PostgresFunctionCallLog:
    def __init__(self, pool: RawQueryPool | None = None) -> None:
        self._pool = pool

    async def _get_pool(self) -> RawQueryPool:
        if self._pool is None:
            self._pool = await get_raw_query_pool()
        return self._pool

    async def record_started(
        self,
        *,
        function_name: str,
        arguments: Any,
        execution_mode: str | None,
        owner_id: str | None,
        llm_call_log_id: str | None,
    ) -> str:
        log_id = new_prefixed_id("fcall")
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO function_call_logs (
                    id, owner_id, llm_call_log_id, function_name, arguments,
                    execution_mode, status, started_at
                )
                VALUES ($1, $2, $3, $4, $5, $6, 'executing', $7)
                """,
                log_id,
                owner_id,
                llm_call_log_id,
                function_name,
                arguments,
                execution_mode,
                utc_now(),
            )
        return log_id

    async def record_finished(
        self,
        log_id: str,
        *,
        status: CallStatus,
        result: Any = None,
        error_message: str | None = None,
        job_id: str | None = None,
        execution_time_ms: int | None = None,
        execution_mode: str | None = None,
    ) -> bool:
        """Set the terminal status. Returns False if the row was already finished."""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            updated_id = await conn.fetchval(
                """
                UPDATE function_call_logs
                SET status = $2,
                    result = $3,
                    error_message = $4,
                    job_id = $5,
                    execution_time_ms = $6,
                    execution_mode = COALESCE($7, execution_mode),
                    completed_at = $8
                WHERE id = $1
                  AND completed_at IS NULL
                RETURNING id
                """,
                log_id,
                CallStatus(status).value,
                result,
                error_message,
                job_id,
                execution_time_ms,
                execution_mode,
                utc_now(),
            )
        return updated_id is not None
