from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from conduit.auth.api_key import ApiKeyRecord, hash_api_key
from conduit.functions.call_log import CallStatus
from conduit.functions.registry import FunctionDefinition
from conduit.kernel.ids import new_prefixed_id


@dataclass
class InMemoryFunctionCallLog:
    """Call log rows keyed by id. `completed_at` is modelled by `finished`."""

    rows: dict[str, dict[str, Any]] = field(default_factory=dict)

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
        self.rows[log_id] = {
            "id": log_id,
            "function_name": function_name,
            "arguments": arguments,
            "execution_mode": execution_mode,
            "owner_id": owner_id,
            "llm_call_log_id": llm_call_log_id,
            "status": CallStatus.EXECUTING.value,
            "finished": False,
        }
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
        row = self.rows.get(log_id)
        if row is None or row["finished"]:
            return False
        row.update(
            status=CallStatus(status).value,
            result=result,
            error_message=error_message,
            job_id=job_id,
            execution_time_ms=execution_time_ms,
            finished=True,
        )
        if execution_mode is not None:
            row["execution_mode"] = execution_mode
        return True

    def for_function(self, name: str) -> list[dict[str, Any]]:
        return [row for row in self.rows.values() if row["function_name"] == name]


@dataclass
class StaticDefinitionStore:
    by_owner: dict[str, list[FunctionDefinition]] = field(default_factory=dict)

    async def load(self, owner_id: str) -> list[FunctionDefinition]:
        return list(self.by_owner.get(owner_id, []))


@dataclass
class InMemoryApiKeyStore:
    records: dict[str, ApiKeyRecord] = field(default_factory=dict)
    usage: dict[str, int] = field(default_factory=dict)

    def add(self, raw_key: str, record: ApiKeyRecord) -> None:
        self.records[hash_api_key(raw_key)] = record

    async def find_by_hash(self, key_hash: str) -> ApiKeyRecord | None:
        return self.records.get(key_hash)

    async def record_usage(self, key_id: str) -> None:
        self.usage[key_id] = self.usage.get(key_id, 0) + 1
