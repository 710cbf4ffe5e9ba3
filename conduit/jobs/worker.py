"""
Durable Jobs Worker

Polls the Postgres-backed `job_queue` table, runs each claimed job through the
handler registered for its kind and writes the outcome back.
"""

from __future__ import annotations

import asyncio
import signal
import time
from dataclasses import dataclass
from datetime import timedelta
from functools import partial
from typing import Any
from uuid import uuid4

import structlog

from conduit.config import Settings, get_settings
from conduit.db.client import close_db_pool
from conduit.jobs.handlers import JobContext, JobHandlerRegistry, build_default_job_handlers
from conduit.jobs.models import Job
from conduit.jobs.queue import JobQueue, get_job_queue
from conduit.kernel.logging import configure_logging
from conduit.kernel.serialization import to_jsonable
from conduit.monitoring.metrics import get_metrics

logger = structlog.get_logger()


@dataclass(frozen=True)
class TickSummary:
    claimed: int = 0
    completed: int = 0
    failed: int = 0
    requeued: int = 0


def _as_result(value: Any) -> dict[str, Any]:
    result = to_jsonable(value)
    if isinstance(result, dict):
        return result
    return {"value": result}


class JobsWorker:
    def __init__(
        self,
        queue: JobQueue | None = None,
        handlers: JobHandlerRegistry | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.queue = queue or get_job_queue()
        self.handlers = handlers or build_default_job_handlers(self.queue, self.settings)
        self.worker_id = f"jobs-worker:{uuid4()}"
        self._shutdown = asyncio.Event()

    async def run_forever(self) -> None:
        logger.info(
            "Jobs worker starting",
            worker_id=self.worker_id,
            poll_interval_seconds=self.settings.job_worker_poll_interval_seconds,
            batch_size=self.settings.job_worker_batch_size,
            kinds=self.handlers.kinds(),
        )
        try:
            while not self._shutdown.is_set():
                # Never crash the worker loop because of a single tick.
                try:
                    await self.run_tick()
                except Exception as exc:
                    logger.error(
                        "Unhandled exception in worker tick",
                        worker_id=self.worker_id,
                        error=str(exc),
                    )

                try:
                    await asyncio.wait_for(
                        self._shutdown.wait(),
                        timeout=self.settings.job_worker_poll_interval_seconds,
                    )
                except asyncio.TimeoutError:
                    pass
        finally:
            logger.info("Jobs worker stopped", worker_id=self.worker_id)

    async def shutdown(self) -> None:
        self._shutdown.set()

    async def run_tick(self) -> TickSummary:
        """Claim one batch and process it sequentially in claimed order."""
        requeued = await self._requeue_stale_jobs()

        jobs = await self.queue.claim(
            self.settings.job_worker_batch_size,
            worker_id=self.worker_id,
        )
        get_metrics().track_jobs_claimed(len(jobs))
        if not jobs:
            return TickSummary(requeued=requeued)

        logger.info("Claimed jobs", worker_id=self.worker_id, count=len(jobs))
        completed = failed = 0
        for job in jobs:
            if await self._execute_claimed_job(job):
                completed += 1
            else:
                failed += 1

        return TickSummary(
            claimed=len(jobs),
            completed=completed,
            failed=failed,
            requeued=requeued,
        )

    async def _requeue_stale_jobs(self) -> int:
        stale_after = int(self.settings.job_worker_stale_after_seconds)
        if stale_after <= 0:
            return 0
        try:
            requeued = await self.queue.requeue_stale(
                older_than=timedelta(seconds=stale_after),
                limit=self.settings.job_worker_stale_requeue_limit,
            )
        except Exception as exc:
            logger.warning(
                "Failed to requeue stale processing jobs",
                worker_id=self.worker_id,
                error=str(exc),
            )
            return 0
        get_metrics().track_jobs_requeued(requeued)
        return requeued

    async def _execute_claimed_job(self, job: Job) -> bool:
        """Run one job. Returns True if the handler succeeded."""
        started = time.monotonic()
        logger.info(
            "Executing job",
            job_id=job.id,
            kind=job.kind,
            owner_id=job.owner_id,
            priority=job.priority,
        )

        handler = self.handlers.get(job.kind)
        if handler is None:
            logger.warning("No handler registered for job kind", job_id=job.id, kind=job.kind)
            await self._mark_failed(job, f"No handler registered for job kind: {job.kind}")
            get_metrics().track_job_finished(job.kind, "failed", time.monotonic() - started)
            return False

        ctx = JobContext(
            job_id=job.id,
            kind=job.kind,
            owner_id=job.owner_id,
            _progress=partial(self.queue.update_progress, worker_id=self.worker_id),
        )
        try:
            result = _as_result(await handler(dict(job.payload or {}), ctx))
        except Exception as exc:
            error = str(exc) or exc.__class__.__name__
            await self._mark_failed(job, error)
            duration = time.monotonic() - started
            get_metrics().track_job_finished(job.kind, "failed", duration)
            logger.warning(
                "Job failed",
                job_id=job.id,
                kind=job.kind,
                duration_seconds=duration,
                error=error,
            )
            return False

        try:
            completed = await self.queue.complete(job.id, result, worker_id=self.worker_id)
        except Exception as exc:
            # The stale requeue makes the job runnable again if this write was lost.
            logger.error(
                "Failed to mark job completed",
                worker_id=self.worker_id,
                job_id=job.id,
                kind=job.kind,
                error=str(exc),
            )
        else:
            if not completed:
                logger.warning(
                    "Job result discarded, claim no longer held",
                    worker_id=self.worker_id,
                    job_id=job.id,
                    kind=job.kind,
                )
        duration = time.monotonic() - started
        get_metrics().track_job_finished(job.kind, "completed", duration)
        logger.info(
            "Job completed",
            job_id=job.id,
            kind=job.kind,
            duration_seconds=duration,
        )
        return True

    async def _mark_failed(self, job: Job, error: str) -> None:
        try:
            failed = await self.queue.fail(job.id, error, worker_id=self.worker_id)
        except Exception as exc:
            logger.error(
                "Failed to mark job failed",
                worker_id=self.worker_id,
                job_id=job.id,
                kind=job.kind,
                error=str(exc),
            )
            return
        if not failed:
            logger.warning(
                "Job failure discarded, claim no longer held",
                worker_id=self.worker_id,
                job_id=job.id,
                kind=job.kind,
            )


async def _run() -> None:
    configure_logging()
    worker = JobsWorker()

    loop = asyncio.get_running_loop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda: asyncio.create_task(worker.shutdown()))
        except NotImplementedError:
            signal.signal(sig, lambda *_: asyncio.create_task(worker.shutdown()))

    try:
        await worker.run_forever()
    finally:
        await close_db_pool()


def main() -> None:
    asyncio.run(_run())


if __name__ == "__main__":
    main()
