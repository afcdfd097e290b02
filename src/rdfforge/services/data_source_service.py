"""Data source service: uploads, previews and column analysis."""

from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession

from rdfforge.core.clock import utcnow
from rdfforge.core.errors import InputValidationError, NotFoundError
from rdfforge.data.formats import RDF_FORMATS, ReadResult, Table, analyze_table, detect_format, read_table_file
from rdfforge.data.storage import FileStorage
from rdfforge.models.data_source import DataSource
from rdfforge.rdf import MEDIA_TYPES, parse_graph, rdflib_format, term_to_str
from rdfforge.repositories.data_source_repo import DataSourceRepository

logger = logging.getLogger("rdfforge.data")

TABULAR_MEDIA_TYPES = {"csv": "text/csv", "tsv": "text/tab-separated-values", "json": "application/json"}


class DataSourceService:
    def __init__(self, session: AsyncSession, storage: FileStorage):
        self.repo = DataSourceRepository(session)
        self.storage = storage

    async def get(self, source_id: str) -> DataSource:
        source = await self.repo.get_by_id(source_id)
        if source is None:
            raise NotFoundError("Data source", source_id)
        return source

    async def find(self, format: str | None = None, search: str | None = None, limit: int = 100, offset: int = 0):
        return await self.repo.find(format=format, search=search, limit=limit, offset=offset)

    @staticmethod
    def detect(filename: str, head: bytes) -> dict:
        return detect_format(filename, head)

    async def upload(
        self,
        filename: str,
        data: bytes,
        name: str | None = None,
        encoding: str | None = None,
        delimiter: str | None = None,
        has_header: bool = True,
        analyze: bool = True,
        uploaded_by: str | None = None,
    ) -> DataSource:
        """Store an uploaded file and register it. Explicit encoding and delimiter win over detection."""
        if not data:
            raise InputValidationError("Uploaded file is empty", errors=[{"path": "file", "message": "no content"}])
        detected = detect_format(filename, data[:64 * 1024])
        source_id = str(uuid.uuid4())
        path = await self.storage.save(source_id, filename, data)
        source = await self.repo.create(
            id=source_id,
            name=name or Path(filename).stem,
            original_filename=filename,
            format=detected["format"],
            size_bytes=len(data),
            encoding=encoding or detected["encoding"],
            delimiter=delimiter or detected["delimiter"],
            has_header=has_header,
            storage_path=str(path),
            uploaded_by=uploaded_by,
        )
        logger.info(f"Registered data source {source.name} ({source.format}, {source.size_bytes} bytes)")
        if analyze:
            try:
                await self.analyze(source.id)
            except InputValidationError as e:
                # Kept so the file can still be downloaded; preview and pipelines report the error
                logger.warning(f"Could not analyze {source.name}: {e.message}")
        return await self.get(source.id)

    async def _read(self, source: DataSource) -> ReadResult:
        if source.format in RDF_FORMATS:
            content = await self.storage.read_bytes(source.storage_path)
            graph = await asyncio.to_thread(parse_graph, content.decode(source.encoding or "utf-8"), source.format)
            table = Table(columns=["subject", "predicate", "object"])
            table.rows = [
                {"subject": term_to_str(s), "predicate": term_to_str(p), "object": term_to_str(o)}
                for s, p, o in graph
            ]
            return ReadResult(table)
        try:
            return await asyncio.to_thread(
                read_table_file,
                source.storage_path,
                source.format,
                encoding=source.encoding,
                delimiter=source.delimiter,
                has_header=source.has_header,
            )
        except UnicodeDecodeError as e:
            raise InputValidationError(
                f"Could not decode {source.original_filename} as {source.encoding}",
                errors=[{"path": "encoding", "message": str(e)}],
            ) from e

    async def analyze(self, source_id: str) -> dict:
        source = await self.get(source_id)
        result = await self._read(source)
        columns = analyze_table(result.table)
        await self.repo.update(
            source,
            row_count=len(result.table),
            column_count=len(columns),
            column_schema=columns,
            analyzed_at=utcnow(),
        )
        return {"columns": columns, "row_count": len(result.table), "row_errors": len(result.errors)}

    async def preview(self, source_id: str, rows: int = 10, offset: int = 0) -> dict:
        source = await self.get(source_id)
        result = await self._read(source)
        table = result.table
        return {
            "columns": table.columns,
            "data": table.rows[offset:offset + rows],
            "schema": source.column_schema or analyze_table(table),
            "total_rows": len(table),
        }

    async def download(self, source_id: str) -> tuple[bytes, str, str]:
        """(content, filename, media type)"""
        source = await self.get(source_id)
        content = await self.storage.read_bytes(source.storage_path)
        if source.format in RDF_FORMATS:
            media_type = MEDIA_TYPES.get(rdflib_format(source.format), "application/octet-stream")
        else:
            media_type = TABULAR_MEDIA_TYPES.get(source.format, "application/octet-stream")
        return content, source.original_filename, media_type

    async def delete(self, source_id: str) -> None:
        source = await self.get(source_id)
        await self.storage.delete(source.storage_path)
        await self.repo.delete(source)
        logger.info(f"Deleted data source {source.name} ({source.id})")
