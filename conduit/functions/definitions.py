"""Owner-scoped function definitions stored in `function_definitions`.

Stored definitions are always deferred: calling one enqueues a job of the
row's `target_kind` (or `job:<name>` when unset).
"""

from __future__ import annotations

from typing import Protocol

import structlog

from conduit.db.port import RawQueryPool, get_raw_query_pool
from conduit.functions.registry import ExecutionMode, FunctionDefinition
from conduit.functions.schema import ObjectNode, from_json_schema
from conduit.kernel.errors import ConduitError

logger = structlog.get_logger()


class FunctionDefinitionStore(Protocol):
    async def load(self, owner_id: str) -> list[FunctionDefinition]: ...


class PostgresFunctionDefinitionStore:
    def __init__(self, pool: RawQueryPool | None = None) -> None:
        self._pool = pool

    async def _get_pool(self) -> RawQueryPool:
        if self._pool is None:
            self._pool = await get_raw_query_pool()
        return self._pool

    async def load(self, owner_id: str) -> list[FunctionDefinition]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT name, description, parameters, target_kind
                FROM function_definitions
                WHERE owner_id = $1
                  AND is_enabled = TRUE
                ORDER BY name ASC
                """,
                owner_id,
            )

        definitions: list[FunctionDefinition] = []
        for row in rows or []:
            try:
                parameters = from_json_schema(row["parameters"] or {"type": "object"})
                if not isinstance(parameters, ObjectNode):
                    raise ConduitError(
                        code="functions.invalid_parameters",
                        message="Stored parameters must describe an object",
                    )
                definitions.append(
                    FunctionDefinition(
                        name=row["name"],
                        description=row["description"] or "",
                        parameters=parameters,
                        execution_mode=ExecutionMode.ASYNC,
                        owner_id=owner_id,
                        job_kind=row["target_kind"],
                    )
                )
            except ConduitError as exc:
                logger.warning(
                    "Skipping invalid stored function definition",
                    owner_id=owner_id,
                    name=row["name"],
                    error=exc.message,
                )
        return definitions
