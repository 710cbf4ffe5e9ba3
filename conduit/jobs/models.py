"""Job records stored in the `job_queue` table."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass(frozen=True)
class EnqueueJobRequest:
    kind: str
    payload: dict[str, Any] = field(default_factory=dict)
    priority: int = 0
    scheduled_at: datetime | None = None
    owner_id: str | None = None


@dataclass(frozen=True)
class Job:
    id: str
    kind: str
    payload: dict[str, Any]
    status: JobStatus
    progress: int
    priority: int
    scheduled_at: datetime
    owner_id: str | None = None
    result: dict[str, Any] | None = None
    error_message: str | None = None
    processing_started_at: datetime | None = None
    locked_by: str | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Job":
        return cls(
            id=str(row["id"]),
            kind=row["kind"],
            payload=row["payload"] or {},
            status=JobStatus(row["status"]),
            progress=int(row["progress"] or 0),
            priority=int(row["priority"] or 0),
            scheduled_at=row["scheduled_at"],
            owner_id=row.get("owner_id"),
            result=row.get("result"),
            error_message=row.get("error_message"),
            processing_started_at=row.get("processing_started_at"),
            locked_by=row.get("locked_by"),
            completed_at=row.get("completed_at"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )


def clamp_progress(value: int | float) -> int:
    return max(0, min(100, int(value)))
