"""SOURCE steps: read a registered data source or inline content into the job context."""

from __future__ import annotations

import asyncio

from rdfforge.core.errors import DataQualityError, InfrastructureError, InputValidationError
from rdfforge.data.formats import ReadResult, read_csv_text, read_json_text, read_table_file
from rdfforge.models.data_source import DataSource
from rdfforge.pipeline.context import JobContext
from rdfforge.rdf import parse_graph
from rdfforge.repositories.data_source_repo import DataSourceRepository

MAX_LOGGED_ROW_ERRORS = 20

# Data source formats each SOURCE operation can read
SOURCE_FORMATS = {
    "load-csv": ("csv", "tsv"),
    "load-json": ("json",),
    "load-rdf": ("turtle", "ntriples", "jsonld", "rdfxml", "trig", "nquads"),
}


async def _data_source(ctx: JobContext, source_id: str, formats: tuple[str, ...]) -> DataSource:
    async with ctx.resources.database.session() as session:
        source = await DataSourceRepository(session).get_by_id(source_id)
    if source is None:
        raise InputValidationError(
            f"Data source '{source_id}' not found",
            errors=[{"path": "dataSourceId", "message": "unknown data source"}],
        )
    if source.format not in formats:
        raise InputValidationError(
            f"Data source '{source.name}' is {source.format}, expected one of {list(formats)}",
            errors=[{"path": "dataSourceId", "message": f"format {source.format}"}],
        )
    return source


def _check_row_errors(ctx: JobContext, result: ReadResult, threshold: float) -> None:
    """Log malformed rows; fail the step once their share exceeds the threshold."""
    for error in result.errors[:MAX_LOGGED_ROW_ERRORS]:
        ctx.warn(f"Row {error.row}: {error.message}", {"row": error.row})
    if len(result.errors) > MAX_LOGGED_ROW_ERRORS:
        ctx.warn(f"{len(result.errors) - MAX_LOGGED_ROW_ERRORS} more malformed rows not shown")
    if result.error_rate > threshold:
        raise DataQualityError(
            f"{len(result.errors)} of {result.total_rows} rows are malformed "
            f"({result.error_rate:.1%} > threshold {threshold:.1%})",
            errors=[{"path": f"row {e.row}", "message": e.message} for e in result.errors[:MAX_LOGGED_ROW_ERRORS]],
        )


async def _read_file(path: str, **kwargs) -> ReadResult:
    try:
        return await asyncio.to_thread(read_table_file, path, **kwargs)
    except UnicodeDecodeError as e:
        raise InputValidationError(f"Could not decode {path}: {e}") from e
    except OSError as e:
        raise InfrastructureError(f"Could not read data source file {path}: {e}") from e


def _metrics(ctx: JobContext, result: ReadResult) -> dict:
    ctx.table = result.table
    ctx.log(f"Loaded {len(result.table)} rows, {len(result.table.columns)} columns")
    return {"rows_read": len(result.table), "row_errors": len(result.errors), "columns": len(result.table.columns)}


async def load_csv(ctx: JobContext, params: dict) -> dict:
    if params.get("dataSourceId"):
        source = await _data_source(ctx, params["dataSourceId"], SOURCE_FORMATS["load-csv"])
        result = await _read_file(
            source.storage_path,
            fmt=source.format,
            encoding=source.encoding or params["encoding"],
            delimiter=source.delimiter or params["delimiter"],
            has_header=params["hasHeader"],
        )
    else:
        result = read_csv_text(params["content"], params["delimiter"], params["hasHeader"])
    _check_row_errors(ctx, result, params["errorThreshold"])
    return _metrics(ctx, result)


async def load_json(ctx: JobContext, params: dict) -> dict:
    if params.get("dataSourceId"):
        source = await _data_source(ctx, params["dataSourceId"], SOURCE_FORMATS["load-json"])
        result = await _read_file(source.storage_path, fmt="json", encoding=source.encoding, records_path=params.get("recordsPath"))
    else:
        result = read_json_text(params["content"], params.get("recordsPath"))
    _check_row_errors(ctx, result, 1.0)
    return _metrics(ctx, result)


async def load_rdf(ctx: JobContext, params: dict) -> dict:
    fmt = params["format"]
    if params.get("dataSourceId"):
        source = await _data_source(ctx, params["dataSourceId"], SOURCE_FORMATS["load-rdf"])
        fmt = source.format
        content = (await ctx.resources.storage.read_bytes(source.storage_path)).decode(source.encoding or "utf-8")
    else:
        content = params["content"]

    loaded = await asyncio.to_thread(parse_graph, content, fmt)
    before = len(ctx.graph)
    ctx.graph += loaded
    ctx.log(f"Loaded {len(loaded)} triples ({fmt})")
    return {"triples_read": len(loaded), "triples_added": len(ctx.graph) - before}


HANDLERS = {
    "load-csv": load_csv,
    "load-json": load_json,
    "load-rdf": load_rdf,
}
