"""Postgres-backed durable job queue (`job_queue` table)."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Protocol

import asyncpg
import structlog

from conduit.db.port import RawQueryPool, get_raw_query_pool
from conduit.jobs.models import EnqueueJobRequest, Job, JobStatus, clamp_progress
from conduit.kernel.errors import InfrastructureError
from conduit.kernel.ids import new_prefixed_id
from conduit.kernel.time import utc_now

logger = structlog.get_logger()

# Errors that mean "the datastore is unavailable", as opposed to a bug.
DATASTORE_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
)

_JOB_COLUMNS = """
    id, kind, payload, status, progress, priority, scheduled_at, owner_id,
    result, error_message, processing_started_at, locked_by, completed_at, created_at,
    updated_at
"""


class JobQueue(Protocol):
    async def enqueue(self, request: EnqueueJobRequest) -> str: ...

    async def claim(self, limit: int, *, worker_id: str) -> list[Job]: ...

    async def update_progress(self, job_id: str, progress: int, *, worker_id: str) -> bool: ...

    async def complete(self, job_id: str, result: dict[str, Any], *, worker_id: str) -> bool: ...

    async def fail(self, job_id: str, error_message: str, *, worker_id: str) -> bool: ...

    async def get(self, job_id: str) -> Job | None: ...

    async def list_jobs(
        self,
        *,
        owner_id: str | None = None,
        kind: str | None = None,
        status: JobStatus | None = None,
        limit: int = 50,
    ) -> list[Job]: ...

    async def count_by_status(
        self, *, since: datetime, until: datetime, owner_id: str | None = None
    ) -> dict[str, int]: ...

    async def requeue_stale(self, *, older_than: timedelta, limit: int = 100) -> int: ...


def _rows_affected(status: Any) -> int:
    # asyncpg returns command tags like "UPDATE 1"
    try:
        return int(str(status).rsplit(" ", 1)[-1])
    except ValueError:
        return 0


class PostgresJobQueue:
    """
    Job queue over the asyncpg raw pool.

    Claiming is a single UPDATE over a `FOR UPDATE SKIP LOCKED` subselect, so
    concurrent pollers never receive the same row. The claiming worker is stamped
    into `locked_by`; progress and terminal writes require both
    `status = 'processing'` and that worker, so they are no-ops once a job has
    finished or has been requeued and claimed by someone else.
    """

    def __init__(self, pool: RawQueryPool | None = None) -> None:
        self._pool = pool

    async def _get_pool(self) -> RawQueryPool:
        if self._pool is None:
            self._pool = await get_raw_query_pool()
        return self._pool

    async def enqueue(self, request: EnqueueJobRequest) -> str:
        """Insert a `pending` job. Raises InfrastructureError if the insert fails."""
        job_id = new_prefixed_id("job")
        now = utc_now()
        scheduled_at = request.scheduled_at or now

        try:
            pool = await self._get_pool()
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    INSERT INTO job_queue (
                        id, kind, payload, status, progress, priority,
                        scheduled_at, owner_id, created_at, updated_at
                    )
                    VALUES ($1, $2, $3, 'pending', 0, $4, $5, $6, $7, $7)
                    RETURNING id
                    """,
                    job_id,
                    request.kind,
                    dict(request.payload or {}),
                    int(request.priority),
                    scheduled_at,
                    request.owner_id,
                    now,
                )
        except DATASTORE_ERRORS as exc:
            logger.error("Failed to enqueue job", kind=request.kind, error=str(exc))
            raise InfrastructureError(message="Job could not be enqueued") from exc

        logger.info(
            "Job enqueued",
            job_id=job_id,
            kind=request.kind,
            priority=request.priority,
            owner_id=request.owner_id,
        )
        return str(row["id"]) if row else job_id

    async def claim(self, limit: int, *, worker_id: str) -> list[Job]:
        """
        Atomically move up to `limit` due pending jobs to `processing`.

        Returns jobs ordered by priority desc, scheduled_at asc. A datastore
        failure is logged and yields an empty batch.
        """
        safe_limit = int(max(0, limit))
        if safe_limit == 0:
            return []

        now = utc_now()
        try:
            pool = await self._get_pool()
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    UPDATE job_queue
                    SET status = 'processing',
                        processing_started_at = $2,
                        locked_by = $3,
                        updated_at = $2
                    WHERE id IN (
                        SELECT id
                        FROM job_queue
                        WHERE status = 'pending'
                          AND scheduled_at <= $2
                        ORDER BY priority DESC, scheduled_at ASC
                        LIMIT $1
                        FOR UPDATE SKIP LOCKED
                    )
                    RETURNING {_JOB_COLUMNS}
                    """,
                    safe_limit,
                    now,
                    worker_id,
                )
        except DATASTORE_ERRORS as exc:
            logger.warning("Failed to claim jobs", worker_id=worker_id, error=str(exc))
            return []

        jobs = [Job.from_row(row) for row in rows or []]
        jobs.sort(key=lambda job: (-job.priority, job.scheduled_at))
        return jobs

    async def update_progress(self, job_id: str, progress: int, *, worker_id: str) -> bool:
        """Raise progress of a processing job. Never lowers it."""
        now = utc_now()
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            status = await conn.execute(
                """
                UPDATE job_queue
                SET progress = GREATEST(progress, $2),
                    updated_at = $3
                WHERE id = $1
                  AND status = 'processing'
                  AND locked_by = $4
                """,
                job_id,
                clamp_progress(progress),
                now,
                worker_id,
            )
        return _rows_affected(status) > 0

    async def complete(self, job_id: str, result: dict[str, Any], *, worker_id: str) -> bool:
        now = utc_now()
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            updated_id = await conn.fetchval(
                """
                UPDATE job_queue
                SET status = 'completed',
                    progress = 100,
                    result = $2,
                    error_message = NULL,
                    completed_at = $3,
                    updated_at = $3
                WHERE id = $1
                  AND status = 'processing'
                  AND locked_by = $4
                RETURNING id
                """,
                job_id,
                result,
                now,
                worker_id,
            )
        return updated_id is not None

    async def fail(self, job_id: str, error_message: str, *, worker_id: str) -> bool:
        now = utc_now()
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            updated_id = await conn.fetchval(
                """
                UPDATE job_queue
                SET status = 'failed',
                    result = NULL,
                    error_message = $2,
                    completed_at = $3,
                    updated_at = $3
                WHERE id = $1
                  AND status = 'processing'
                  AND locked_by = $4
                RETURNING id
                """,
                job_id,
                error_message or "Job failed",
                now,
                worker_id,
            )
        return updated_id is not None

    async def get(self, job_id: str) -> Job | None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_JOB_COLUMNS} FROM job_queue WHERE id = $1",
                job_id,
            )
        return Job.from_row(row) if row else None

    async def list_jobs(
        self,
        *,
        owner_id: str | None = None,
        kind: str | None = None,
        status: JobStatus | None = None,
        limit: int = 50,
    ) -> list[Job]:
        conditions: list[str] = []
        params: list[Any] = []
        if owner_id is not None:
            params.append(owner_id)
            conditions.append(f"owner_id = ${len(params)}")
        if kind is not None:
            params.append(kind)
            conditions.append(f"kind = ${len(params)}")
        if status is not None:
            params.append(JobStatus(status).value)
            conditions.append(f"status = ${len(params)}")
        params.append(int(max(1, min(limit, 500))))

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_JOB_COLUMNS}
                FROM job_queue
                {where}
                ORDER BY created_at DESC
                LIMIT ${len(params)}
                """,
                *params,
            )
        return [Job.from_row(row) for row in rows or []]

    async def count_by_status(
        self, *, since: datetime, until: datetime, owner_id: str | None = None
    ) -> dict[str, int]:
        """Count jobs created in [since, until) grouped by status."""
        params: list[Any] = [since, until]
        owner_clause = ""
        if owner_id is not None:
            params.append(owner_id)
            owner_clause = "AND owner_id = $3"

        pool = await self._get_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT status, COUNT(*) AS count
                FROM job_queue
                WHERE created_at >= $1
                  AND created_at < $2
                  {owner_clause}
                GROUP BY status
                """,
                *params,
            )
        counts = {status.value: 0 for status in JobStatus}
        for row in rows or []:
            counts[row["status"]] = int(row["count"])
        return counts

    async def requeue_stale(self, *, older_than: timedelta, limit: int = 100) -> int:
        """
        Return jobs stuck in 'processing' to 'pending'.

        Without this, a worker crash can leave jobs stuck in 'processing' forever.
        """
        now = utc_now()
        cutoff = now - older_than
        safe_limit = int(max(1, limit))

        pool = await self._get_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                WITH stale AS (
                    SELECT id
                    FROM job_queue
                    WHERE status = 'processing'
                      AND processing_started_at < $2::timestamptz
                    ORDER BY processing_started_at ASC
                    LIMIT $1
                    FOR UPDATE SKIP LOCKED
                )
                UPDATE job_queue jq
                SET status = 'pending',
                    progress = 0,
                    processing_started_at = NULL,
                    locked_by = NULL,
                    updated_at = $3::timestamptz
                FROM stale
                WHERE jq.id = stale.id
                RETURNING jq.id
                """,
                safe_limit,
                cutoff,
                now,
            )

        requeued = len(rows or [])
        if requeued:
            logger.warning("Requeued stale processing jobs", count=requeued)
        return requeued


_job_queue: PostgresJobQueue | None = None


def get_job_queue() -> PostgresJobQueue:
    """Get the process-wide job queue."""
    global _job_queue
    if _job_queue is None:
        _job_queue = PostgresJobQueue()
    return _job_queue
