"""
Background Jobs

Durable Postgres-backed job queue, job handlers and the polling worker.
"""

from conduit.jobs.models import EnqueueJobRequest, Job, JobStatus
from conduit.jobs.queue import JobQueue, PostgresJobQueue, get_job_queue

__all__ = [
    "EnqueueJobRequest",
    "Job",
    "JobStatus",
    "JobQueue",
    "PostgresJobQueue",
    "get_job_queue",
]
