"""TRANSFORM steps: pure functions of (table, params) -> table.

Column references are checked against the table before any row is touched,
so a bad parameter fails the step without partial output.
"""

from __future__ import annotations

import string
from decimal import Decimal, InvalidOperation
from typing import Any

from rdfforge.core.errors import DataQualityError, ParameterError
from rdfforge.data.formats import COLUMN_TYPES, Table, cast_value
from rdfforge.pipeline.context import JobContext


def require_columns(table: Table, columns, param: str) -> None:
    missing = [c for c in columns if c not in table.columns]
    if missing:
        raise ParameterError(
            f"Unknown column(s) {missing} in '{param}'",
            {"param": param, "missing": missing, "available": table.columns},
        )


def template_fields(template: str) -> list[str]:
    try:
        return [name for _, name, _, _ in string.Formatter().parse(template) if name]
    except ValueError as e:
        raise ParameterError(f"Invalid template '{template}': {e}", {"param": "template"}) from e


def render_template(template: str, row: dict[str, Any]) -> str:
    return template.format_map({k: "" if v is None else v for k, v in row.items()})


async def rename_columns(ctx: JobContext, params: dict) -> dict:
    table = ctx.require_table("rename-columns")
    mapping = params["mapping"]
    if not all(isinstance(v, str) and v for v in mapping.values()):
        raise ParameterError("mapping values must be non-empty column names", {"param": "mapping"})
    require_columns(table, mapping, "mapping")

    columns = [mapping.get(c, c) for c in table.columns]
    if len(set(columns)) != len(columns):
        raise ParameterError("Renaming would produce duplicate column names", {"param": "mapping", "columns": columns})

    rows = [{mapping.get(k, k): v for k, v in row.items()} for row in table.rows]
    ctx.table = Table(columns=columns, rows=rows)
    ctx.log(f"Renamed {len(mapping)} columns")
    return {"rows": len(rows), "renamed": len(mapping)}


async def select_columns(ctx: JobContext, params: dict) -> dict:
    table = ctx.require_table("select-columns")
    columns = params["columns"]
    require_columns(table, columns, "columns")
    ctx.table = Table(columns=list(columns), rows=[{c: row.get(c) for c in columns} for row in table.rows])
    return {"rows": len(table.rows), "columns": len(columns)}


async def derive_column(ctx: JobContext, params: dict) -> dict:
    table = ctx.require_table("derive-column")
    column, template = params["column"], params["template"]
    require_columns(table, template_fields(template), "template")

    rows = [{**row, column: render_template(template, row)} for row in table.rows]
    columns = table.columns if column in table.columns else table.columns + [column]
    ctx.table = Table(columns=columns, rows=rows)
    return {"rows": len(rows)}


def _number(value: Any) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        return None


def _matches(value: Any, operator: str, expected: Any) -> bool:
    if operator == "notEmpty":
        return value is not None and str(value).strip() != ""
    if operator == "in":
        return str(value) in {str(v) for v in expected}
    if operator == "contains":
        return value is not None and str(expected) in str(value)
    if operator in ("eq", "ne"):
        left, right = _number(value), _number(expected)
        equal = left == right if left is not None and right is not None else str(value) == str(expected)
        return equal if operator == "eq" else not equal

    if value is None or str(value).strip() == "":
        return False
    left, right = _number(value), _number(expected)
    if left is None or right is None:
        left, right = str(value), str(expected)
    return {
        "gt": left > right,
        "gte": left >= right,
        "lt": left < right,
        "lte": left <= right,
    }[operator]


async def filter_rows(ctx: JobContext, params: dict) -> dict:
    table = ctx.require_table("filter-rows")
    column, operator, expected = params["column"], params["operator"], params.get("value")
    require_columns(table, [column], "column")
    if operator == "in" and not isinstance(expected, list):
        raise ParameterError("'in' needs a list value", {"param": "value"})
    if operator != "notEmpty" and expected is None:
        raise ParameterError(f"'{operator}' needs a value", {"param": "value"})

    rows = [row for row in table.rows if _matches(row.get(column), operator, expected)]
    ctx.table = Table(columns=table.columns, rows=rows)
    ctx.log(f"Kept {len(rows)} of {len(table.rows)} rows ({column} {operator} {expected!r})")
    return {"rows_in": len(table.rows), "rows_out": len(rows)}


async def cast_types(ctx: JobContext, params: dict) -> dict:
    table = ctx.require_table("cast-types")
    types = params["types"]
    require_columns(table, types, "types")
    bad = {c: t for c, t in types.items() if t not in COLUMN_TYPES}
    if bad:
        raise ParameterError(f"Unknown column types {bad}", {"param": "types", "allowed": list(COLUMN_TYPES)})

    rows, errors = [], []
    for number, row in enumerate(table.rows, start=1):
        try:
            rows.append({**row, **{c: cast_value(row.get(c), t) for c, t in types.items()}})
        except ValueError as e:
            errors.append({"row": number, "message": str(e)})

    for error in errors[:20]:
        ctx.warn(f"Row {error['row']}: {error['message']}", {"row": error["row"]})
    rate = len(errors) / len(table.rows) if table.rows else 0.0
    if rate > params["errorThreshold"]:
        raise DataQualityError(
            f"{len(errors)} of {len(table.rows)} rows failed to cast ({rate:.1%} > threshold {params['errorThreshold']:.1%})",
            errors=[{"path": f"row {e['row']}", "message": e["message"]} for e in errors[:20]],
        )

    ctx.table = Table(columns=table.columns, rows=rows)
    return {"rows": len(rows), "cast_errors": len(errors)}


HANDLERS = {
    "rename-columns": rename_columns,
    "select-columns": select_columns,
    "derive-column": derive_column,
    "filter-rows": filter_rows,
    "cast-types": cast_types,
}
