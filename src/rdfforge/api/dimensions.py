"""Dimension registry API endpoints."""

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from rdfforge.api.deps import get_session
from rdfforge.rdf import MEDIA_TYPES, rdflib_format
from rdfforge.schemas.dimension import (
    DimensionCreate, DimensionListResponse, DimensionResponse, DimensionUpdate,
    DimensionValueListResponse, DimensionValuesCreate, HierarchyResponse,
)
from rdfforge.services.dimension_service import DimensionService

router = APIRouter(prefix="/dimensions", tags=["dimensions"])


@router.get("", response_model=DimensionListResponse)
async def list_dimensions(
    type: str | None = None,
    search: str | None = None,
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    dimensions, total = await DimensionService(session).find(type=type, search=search, limit=limit, offset=offset)
    return DimensionListResponse(dimensions=dimensions, total=total)


@router.post("", response_model=DimensionResponse, status_code=201)
async def create_dimension(data: DimensionCreate, session: AsyncSession = Depends(get_session)):
    return await DimensionService(session).create(**data.model_dump())


@router.get("/{dimension_id}", response_model=DimensionResponse)
async def get_dimension(dimension_id: str, session: AsyncSession = Depends(get_session)):
    return await DimensionService(session).get(dimension_id)


@router.put("/{dimension_id}", response_model=DimensionResponse)
async def update_dimension(dimension_id: str, data: DimensionUpdate, session: AsyncSession = Depends(get_session)):
    return await DimensionService(session).update(dimension_id, **data.model_dump())


@router.delete("/{dimension_id}", status_code=204)
async def delete_dimension(dimension_id: str, session: AsyncSession = Depends(get_session)):
    await DimensionService(session).delete(dimension_id)
    return Response(status_code=204)


@router.get("/{dimension_id}/values", response_model=DimensionValueListResponse)
async def list_values(dimension_id: str, session: AsyncSession = Depends(get_session)):
    values = await DimensionService(session).values(dimension_id)
    return DimensionValueListResponse(values=values, total=len(values))


@router.post("/{dimension_id}/values", response_model=DimensionValueListResponse, status_code=201)
async def add_values(dimension_id: str, data: DimensionValuesCreate, session: AsyncSession = Depends(get_session)):
    values = await DimensionService(session).add_values(dimension_id, [v.model_dump() for v in data.values])
    return DimensionValueListResponse(values=values, total=len(values))


@router.get("/{dimension_id}/tree", response_model=HierarchyResponse)
async def get_hierarchy(dimension_id: str, session: AsyncSession = Depends(get_session)):
    """Values nested by their parent codes."""
    return HierarchyResponse(dimension_id=dimension_id, roots=await DimensionService(session).tree(dimension_id))


@router.get("/{dimension_id}/export")
async def export_dimension(dimension_id: str, format: str = "turtle", session: AsyncSession = Depends(get_session)):
    """The dimension and its values as a SKOS concept scheme."""
    content = await DimensionService(session).export(dimension_id, format)
    return Response(content=content, media_type=MEDIA_TYPES[rdflib_format(format)])
