"""
Job API Routes

Direct job submission and progress polling for jobs scheduled through async
function dispatch. Callers with an owner id only see their own jobs.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from conduit.api.dependencies import get_job_kinds, get_job_queue
from conduit.auth.middleware import InternalCaller, require_internal_caller
from conduit.jobs.models import EnqueueJobRequest, Job, JobStatus
from conduit.jobs.queue import JobQueue
from conduit.kernel.errors import NotFoundError, ValidationError
from conduit.kernel.time import coerce_utc

router = APIRouter(prefix="/jobs", tags=["Jobs"])


class JobResponse(BaseModel):
    id: str
    kind: str
    status: JobStatus
    progress: int
    priority: int
    scheduled_at: datetime
    owner_id: str | None = None
    payload: dict[str, Any]
    result: dict[str, Any] | None = None
    error_message: str | None = None
    processing_started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ListJobsResponse(BaseModel):
    jobs: list[JobResponse]


class SubmitJobRequest(BaseModel):
    type: str = Field(..., min_length=1, description="Job type; the queued kind is `job:{type}`")
    params: dict[str, Any] = Field(default_factory=dict)
    priority: int = 0
    scheduled_at: datetime | None = Field(
        default=None,
        description="Earliest time the job may run. Defaults to now.",
    )


class SubmitJobResponse(BaseModel):
    job_id: str
    message: str


def _to_response(job: Job) -> JobResponse:
    return JobResponse(
        id=job.id,
        kind=job.kind,
        status=job.status,
        progress=job.progress,
        priority=job.priority,
        scheduled_at=job.scheduled_at,
        owner_id=job.owner_id,
        payload=job.payload,
        result=job.result,
        error_message=job.error_message,
        processing_started_at=job.processing_started_at,
        completed_at=job.completed_at,
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


@router.get("", response_model=ListJobsResponse)
async def list_jobs(
    kind: str | None = Query(None, description="Filter by job kind"),
    status: JobStatus | None = Query(None, description="Filter by status"),
    limit: int = Query(50, ge=1, le=500),
    caller: InternalCaller = Depends(require_internal_caller),
    queue: JobQueue = Depends(get_job_queue),
) -> ListJobsResponse:
    jobs = await queue.list_jobs(owner_id=caller.owner_id, kind=kind, status=status, limit=limit)
    return ListJobsResponse(jobs=[_to_response(job) for job in jobs])


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str,
    caller: InternalCaller = Depends(require_internal_caller),
    queue: JobQueue = Depends(get_job_queue),
) -> JobResponse:
    job = await queue.get(job_id)
    if job is None or (caller.owner_id is not None and job.owner_id != caller.owner_id):
        raise NotFoundError(code="jobs.not_found", message=f"Job {job_id} not found")
    return _to_response(job)


@router.post("", response_model=SubmitJobResponse)
async def submit_job(
    request: SubmitJobRequest,
    caller: InternalCaller = Depends(require_internal_caller),
    queue: JobQueue = Depends(get_job_queue),
    kinds: list[str] = Depends(get_job_kinds),
) -> SubmitJobResponse:
    """
    Queue a job directly and return its id without waiting for it to run.

    The job is picked up by the worker on its next poll once `scheduled_at`
    has passed.
    """
    kind = f"job:{request.type}"
    if kind not in kinds:
        raise ValidationError(
            code="jobs.unknown_kind",
            message=f"Unknown job type: {request.type}",
            meta={"available": [k.removeprefix("job:") for k in kinds]},
        )

    job_id = await queue.enqueue(
        EnqueueJobRequest(
            kind=kind,
            payload=request.params,
            priority=request.priority,
            scheduled_at=coerce_utc(request.scheduled_at) if request.scheduled_at else None,
            owner_id=caller.owner_id,
        )
    )
    return SubmitJobResponse(job_id=job_id, message="Job queued")
