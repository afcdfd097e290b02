"""Schedule API endpoints."""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from rdfforge.api.deps import get_runtime, get_session
from rdfforge.daemon.runtime import ForgeRuntime
from rdfforge.schemas.schedule import ScheduleCreate, ScheduleListResponse, ScheduleResponse, ScheduleUpdate
from rdfforge.services.schedule_service import ScheduleService

router = APIRouter(prefix="/schedules", tags=["schedules"])


@router.get("", response_model=ScheduleListResponse)
async def list_schedules(
    pipeline_id: str | None = None,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    schedules = await ScheduleService(session, runtime.settings.timezone).list_all(pipeline_id=pipeline_id)
    return ScheduleListResponse(schedules=schedules, total=len(schedules))


@router.post("", response_model=ScheduleResponse, status_code=201)
async def create_schedule(
    data: ScheduleCreate,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    return await ScheduleService(session, runtime.settings.timezone).create(**data.model_dump())


@router.get("/{schedule_id}", response_model=ScheduleResponse)
async def get_schedule(
    schedule_id: str,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    return await ScheduleService(session, runtime.settings.timezone).get(schedule_id)


@router.api_route("/{schedule_id}", methods=["POST", "PUT"], response_model=ScheduleResponse)
async def update_schedule(
    schedule_id: str,
    data: ScheduleUpdate,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    """Change the expression, variables, priority or active flag; next_run is recomputed when needed."""
    return await ScheduleService(session, runtime.settings.timezone).update(schedule_id, **data.model_dump())


@router.delete("/{schedule_id}", status_code=204)
async def delete_schedule(
    schedule_id: str,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    await ScheduleService(session, runtime.settings.timezone).delete(schedule_id)
    return Response(status_code=204)
