"""Pipeline and operation catalog API endpoints."""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from rdfforge.api.deps import get_runtime, get_session
from rdfforge.daemon.runtime import ForgeRuntime
from rdfforge.models.job import TriggeredBy
from rdfforge.schemas.job import JobResponse
from rdfforge.schemas.pipeline import (
    DefinitionReport, OperationListResponse, OperationResponse, PipelineCreate, PipelineDuplicate,
    PipelineListResponse, PipelineResponse, PipelineRun, PipelineUpdate, PipelineValidate,
    PipelineVersionListResponse, PipelineVersionResponse,
)
from rdfforge.services.job_service import JobService
from rdfforge.services.pipeline_service import PipelineService

router = APIRouter(prefix="/pipelines", tags=["pipelines"])
operations_router = APIRouter(prefix="/operations", tags=["operations"])


@router.get("", response_model=PipelineListResponse)
async def list_pipelines(
    search: str | None = None,
    status: str | None = None,
    tag: str | None = None,
    limit: int = 100,
    offset: int = 0,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    pipelines, total = await PipelineService(session, runtime.locks).find(
        search=search, status=status, tag=tag, limit=limit, offset=offset,
    )
    return PipelineListResponse(pipelines=pipelines, total=total)


@router.post("", response_model=PipelineResponse, status_code=201)
async def create_pipeline(
    data: PipelineCreate,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    """Register a pipeline from a YAML, JSON or Turtle definition."""
    return await PipelineService(session, runtime.locks).create(**data.model_dump())


@router.post("/validate", response_model=DefinitionReport)
async def validate_pipeline(
    data: PipelineValidate,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    return PipelineService(session, runtime.locks).validate(data.definition, data.definition_format)


@router.get("/{pipeline_id}", response_model=PipelineResponse)
async def get_pipeline(
    pipeline_id: str,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    return await PipelineService(session, runtime.locks).get(pipeline_id)


@router.put("/{pipeline_id}", response_model=PipelineResponse)
async def update_pipeline(
    pipeline_id: str,
    data: PipelineUpdate,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    """Update a pipeline. Pass `version` to reject the write if someone saved in between."""
    return await PipelineService(session, runtime.locks).update(pipeline_id, **data.model_dump())


@router.delete("/{pipeline_id}", status_code=204)
async def delete_pipeline(
    pipeline_id: str,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    await PipelineService(session, runtime.locks).delete(pipeline_id)
    return Response(status_code=204)


@router.post("/{pipeline_id}/duplicate", response_model=PipelineResponse, status_code=201)
async def duplicate_pipeline(
    pipeline_id: str,
    data: PipelineDuplicate | None = None,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    return await PipelineService(session, runtime.locks).duplicate(pipeline_id, name=data.name if data else None)


@router.post("/{pipeline_id}/run", response_model=JobResponse, status_code=201)
async def run_pipeline(
    pipeline_id: str,
    data: PipelineRun | None = None,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    """Queue a manual job for the pipeline's current version."""
    data = data or PipelineRun()
    return await JobService(session, runtime.pool).create(
        pipeline_id=pipeline_id,
        variables=data.variables,
        priority=data.priority,
        dry_run=data.dry_run,
        triggered_by=TriggeredBy.MANUAL.value,
        created_by=data.created_by,
    )


@router.get("/{pipeline_id}/versions", response_model=PipelineVersionListResponse)
async def list_versions(
    pipeline_id: str,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    versions = await PipelineService(session, runtime.locks).versions(pipeline_id)
    return PipelineVersionListResponse(versions=versions, total=len(versions))


@router.get("/{pipeline_id}/versions/{version}", response_model=PipelineVersionResponse)
async def get_version(
    pipeline_id: str,
    version: int,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    return await PipelineService(session, runtime.locks).version(pipeline_id, version)


@operations_router.get("", response_model=OperationListResponse)
async def list_operations(type: str | None = None):
    operations = [op.to_dict() for op in PipelineService.operations(type)]
    return OperationListResponse(operations=operations, total=len(operations))


@operations_router.get("/{name}", response_model=OperationResponse)
async def get_operation(name: str):
    return PipelineService.operation(name).to_dict()
