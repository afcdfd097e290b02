"""Job API endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from rdfforge.api.deps import get_runtime, get_session
from rdfforge.daemon.runtime import ForgeRuntime
from rdfforge.models.job import TriggeredBy
from rdfforge.schemas.job import (
    JobCreate, JobDetailResponse, JobListResponse, JobLogListResponse,
    JobResponse, JobRetry, JobStatsResponse, JobStepResponse,
)
from rdfforge.services.job_service import JobService

router = APIRouter(prefix="/jobs", tags=["jobs"])


def detail(job, steps) -> JobDetailResponse:
    return JobDetailResponse(
        **JobResponse.model_validate(job).model_dump(),
        steps=[JobStepResponse.model_validate(s) for s in steps],
    )


@router.get("", response_model=JobListResponse)
async def list_jobs(
    status: str | None = None,
    pipeline_id: str | None = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    jobs, total = await JobService(session).find(status=status, pipeline_id=pipeline_id, limit=limit, offset=offset)
    return JobListResponse(jobs=jobs, total=total)


@router.get("/stats", response_model=JobStatsResponse)
async def job_stats(
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    return await JobService(session, runtime.pool).stats()


@router.post("", response_model=JobResponse, status_code=201)
async def create_job(
    data: JobCreate,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    """Validate and queue a job for a pipeline (id or name)."""
    return await JobService(session, runtime.pool).create(
        pipeline_id=data.pipeline_id,
        variables=data.variables,
        priority=data.priority,
        dry_run=data.dry_run,
        triggered_by=TriggeredBy.API.value,
        created_by=data.created_by,
    )


@router.get("/{job_id}", response_model=JobDetailResponse)
async def get_job(job_id: str, session: AsyncSession = Depends(get_session)):
    job, steps = await JobService(session).get_with_steps(job_id)
    return detail(job, steps)


@router.post("/{job_id}/cancel", response_model=JobResponse)
async def cancel_job(
    job_id: str,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    return await JobService(session, runtime.pool).cancel(job_id)


@router.delete("/{job_id}", response_model=JobResponse)
async def delete_job(
    job_id: str,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    """Same as cancel; job history is never deleted."""
    return await JobService(session, runtime.pool).cancel(job_id)


@router.post("/{job_id}/retry", response_model=JobResponse, status_code=201)
async def retry_job(
    job_id: str,
    data: JobRetry | None = None,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    return await JobService(session, runtime.pool).retry(job_id, created_by=data.created_by if data else None)


@router.get("/{job_id}/logs", response_model=JobLogListResponse)
async def job_logs(
    job_id: str,
    level: str | None = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    logs, total = await JobService(session).logs(job_id, level=level, limit=limit, offset=offset)
    return JobLogListResponse(logs=logs, total=total)


@router.get("/{job_id}/metrics")
async def job_metrics(job_id: str, session: AsyncSession = Depends(get_session)):
    return await JobService(session).metrics(job_id)
