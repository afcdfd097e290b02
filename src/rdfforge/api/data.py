"""Data source API endpoints."""

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from rdfforge.api.deps import get_runtime, get_session
from rdfforge.daemon.runtime import ForgeRuntime
from rdfforge.schemas.data_source import (
    DataAnalysis, DataPreview, DataSourceListResponse, DataSourceResponse, FormatDetection,
)
from rdfforge.services.data_source_service import DataSourceService

router = APIRouter(prefix="/data", tags=["data"])

DETECTION_SAMPLE_BYTES = 64 * 1024


@router.get("", response_model=DataSourceListResponse)
async def list_data_sources(
    format: str | None = None,
    search: str | None = None,
    limit: int = 100,
    offset: int = 0,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    sources, total = await DataSourceService(session, runtime.storage).find(
        format=format, search=search, limit=limit, offset=offset,
    )
    return DataSourceListResponse(data_sources=sources, total=total)


@router.post("/upload", response_model=DataSourceResponse, status_code=201)
async def upload_data_source(
    file: UploadFile = File(...),
    name: str | None = Form(None),
    encoding: str | None = Form(None),
    delimiter: str | None = Form(None),
    has_header: bool = Form(True),
    analyze: bool = Form(True),
    uploaded_by: str | None = Form(None),
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    """Store a file and register it as a data source; analysis fills the column schema."""
    content = await file.read()
    return await DataSourceService(session, runtime.storage).upload(
        filename=file.filename or "upload",
        data=content,
        name=name,
        encoding=encoding,
        delimiter=delimiter,
        has_header=has_header,
        analyze=analyze,
        uploaded_by=uploaded_by,
    )


@router.post("/detect-format", response_model=FormatDetection)
async def detect_format(file: UploadFile = File(...)):
    head = await file.read(DETECTION_SAMPLE_BYTES)
    return DataSourceService.detect(file.filename or "upload", head)


@router.get("/{source_id}", response_model=DataSourceResponse)
async def get_data_source(
    source_id: str,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    return await DataSourceService(session, runtime.storage).get(source_id)


@router.delete("/{source_id}", status_code=204)
async def delete_data_source(
    source_id: str,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    await DataSourceService(session, runtime.storage).delete(source_id)
    return Response(status_code=204)


@router.get("/{source_id}/preview", response_model=DataPreview)
async def preview_data_source(
    source_id: str,
    rows: int = Query(10, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    preview = await DataSourceService(session, runtime.storage).preview(source_id, rows=rows, offset=offset)
    return DataPreview(
        columns=preview["columns"],
        data=preview["data"],
        column_schema=preview["schema"],
        total_rows=preview["total_rows"],
    )


@router.get("/{source_id}/download")
async def download_data_source(
    source_id: str,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    content, filename, media_type = await DataSourceService(session, runtime.storage).download(source_id)
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/{source_id}/analyze", response_model=DataAnalysis)
async def analyze_data_source(
    source_id: str,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    return await DataSourceService(session, runtime.storage).analyze(source_id)
