"""SHACL shape registry API endpoints."""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from rdfforge.api.deps import get_runtime, get_session
from rdfforge.daemon.runtime import ForgeRuntime
from rdfforge.schemas.shape import (
    ShapeCreate, ShapeDefinition, ShapeGenerateResponse, ShapeInferRequest, ShapeInferResponse,
    ShapeListResponse, ShapeResponse, ShapeSyntaxReport, ShapeSyntaxRequest, ShapeUpdate,
    ShapeVersionListResponse,
)
from rdfforge.services.shape_service import ShapeService

router = APIRouter(prefix="/shapes", tags=["shapes"])
templates_router = APIRouter(prefix="/templates", tags=["shapes"])


@router.get("", response_model=ShapeListResponse)
async def list_shapes(
    search: str | None = None,
    category: str | None = None,
    is_template: bool | None = None,
    limit: int = 100,
    offset: int = 0,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    shapes, total = await ShapeService(session, runtime.locks).find(
        search=search, category=category, is_template=is_template, limit=limit, offset=offset,
    )
    return ShapeListResponse(shapes=shapes, total=total)


@router.get("/categories")
async def list_categories(
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    return {"categories": await ShapeService(session, runtime.locks).categories()}


@router.post("/validate-syntax", response_model=ShapeSyntaxReport)
async def validate_syntax(data: ShapeSyntaxRequest):
    return ShapeService.validate_syntax(data.content, data.content_format)


@router.post("/infer", response_model=ShapeInferResponse)
async def infer_shape(data: ShapeInferRequest):
    """Derive a node shape from the instances of one class in the given data."""
    return ShapeService.infer(data.data, data.data_format, data.target_class, data.shape_uri)


@router.post("/generate", response_model=ShapeGenerateResponse)
async def generate_shape(definition: ShapeDefinition):
    payload = definition.model_dump(by_alias=True, exclude_none=True)
    return ShapeGenerateResponse(content=ShapeService.generate(payload))


@router.post("", response_model=ShapeResponse, status_code=201)
async def create_shape(
    data: ShapeCreate,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    return await ShapeService(session, runtime.locks).create(**data.model_dump())


@router.get("/{shape_id}", response_model=ShapeResponse)
async def get_shape(
    shape_id: str,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    return await ShapeService(session, runtime.locks).get(shape_id)


@router.put("/{shape_id}", response_model=ShapeResponse)
async def update_shape(
    shape_id: str,
    data: ShapeUpdate,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    return await ShapeService(session, runtime.locks).update(shape_id, **data.model_dump())


@router.delete("/{shape_id}", status_code=204)
async def delete_shape(
    shape_id: str,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    await ShapeService(session, runtime.locks).delete(shape_id)
    return Response(status_code=204)


@router.get("/{shape_id}/versions", response_model=ShapeVersionListResponse)
async def list_versions(
    shape_id: str,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    versions = await ShapeService(session, runtime.locks).versions(shape_id)
    return ShapeVersionListResponse(versions=versions, total=len(versions))


@templates_router.get("/shapes", response_model=ShapeListResponse)
async def list_templates(
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    shapes = await ShapeService(session, runtime.locks).templates()
    return ShapeListResponse(shapes=shapes, total=len(shapes))
