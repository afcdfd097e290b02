"""CUBE steps: map tabular rows to RDF in the job graph."""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from urllib.parse import quote

from rdflib import RDF, XSD, Literal, Namespace, URIRef

from rdfforge.core.errors import DataQualityError, InputValidationError, ParameterError
from rdfforge.pipeline.context import JobContext
from rdfforge.pipeline.steps.transform import require_columns, template_fields, render_template
from rdfforge.repositories.dimension_repo import DimensionRepository

CUBE = Namespace("https://cube.link/")

_UNSAFE = re.compile(r"[^a-zA-Z0-9_-]")


def slug(value: Any) -> str:
    return _UNSAFE.sub("_", str(value).strip())


def observation_key(values: tuple[str, ...]) -> str:
    """Local name for an observation: each dimension value percent-encoded, joined by '/'."""
    return "/".join(quote(value, safe="") for value in values)


def _iri(value: str, param: str) -> URIRef:
    if not isinstance(value, str) or not re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*:", value):
        raise ParameterError(f"'{value}' is not an absolute IRI", {"param": param})
    return URIRef(value)


def _datatype(name: str) -> URIRef | None:
    if name == "iri":
        return None
    if name.startswith("http://") or name.startswith("https://"):
        return URIRef(name)
    return XSD[name.split(":", 1)[-1]]


def to_term(value: Any, datatype: str | None = None) -> URIRef | Literal:
    """Literal for a cell value; IRIs when asked for or when the value already is one."""
    if datatype == "iri":
        return URIRef(str(value))
    if datatype:
        return Literal(str(value), datatype=_datatype(datatype))
    if isinstance(value, (bool, int, Decimal, float, date, datetime)):
        return Literal(value)
    text = str(value)
    if text.startswith("http://") or text.startswith("https://"):
        return URIRef(text)
    return Literal(text)


def _measure(value: Any) -> Literal:
    if isinstance(value, bool):
        return Literal(value)
    if isinstance(value, (int, Decimal, float)):
        return Literal(value)
    text = str(value).strip()
    try:
        return Literal(int(text))
    except ValueError:
        pass
    try:
        return Literal(Decimal(text))
    except InvalidOperation:
        return Literal(text)


def _is_null(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


async def _codelist(ctx: JobContext, dimension_id: str) -> dict[str, str]:
    async with ctx.resources.database.session() as session:
        repo = DimensionRepository(session)
        if await repo.get_by_id(dimension_id) is None:
            raise InputValidationError(
                f"Dimension '{dimension_id}' not found",
                errors=[{"path": "codelists", "message": "unknown dimension"}],
            )
        return {value.code: value.uri for value in await repo.list_values(dimension_id)}


async def create_observations(ctx: JobContext, params: dict) -> dict:
    table = ctx.require_table("create-observations")
    cube_uri = _iri(params["cubeUri"], "cubeUri")
    dimensions = {c: _iri(p, "dimensions") for c, p in params["dimensions"].items()}
    measures = {c: _iri(p, "measures") for c, p in params["measures"].items()}
    attributes = {c: _iri(p, "attributes") for c, p in (params.get("attributes") or {}).items()}
    if not dimensions or not measures:
        raise ParameterError("At least one dimension and one measure are required", {"param": "dimensions|measures"})
    for name, mapping in (("dimensions", dimensions), ("measures", measures), ("attributes", attributes)):
        require_columns(table, mapping, name)
    codelists = params.get("codelists") or {}
    unmapped = [c for c in codelists if c not in dimensions]
    if unmapped:
        raise ParameterError(f"Code lists given for columns that are not dimensions: {unmapped}", {"param": "codelists"})
    codes = {column: await _codelist(ctx, dimension_id) for column, dimension_id in codelists.items()}

    base = params.get("observationBaseUri") or f"{str(cube_uri).rstrip('/')}/observation/"
    observation_set = URIRef(f"{str(cube_uri).rstrip('/')}/observationSet")

    graph = ctx.graph
    before = len(graph)
    graph.add((cube_uri, RDF.type, CUBE.Cube))
    graph.add((cube_uri, CUBE.observationSet, observation_set))
    graph.add((observation_set, RDF.type, CUBE.ObservationSet))

    skipped = 0
    seen: dict[tuple[str, ...], int] = {}
    rejected: list[dict] = []
    duplicates = unknown = 0
    for index, row in enumerate(table.rows, start=1):
        if any(_is_null(row.get(c)) for c in dimensions):
            skipped += 1
            continue
        key = tuple(str(row[c]).strip() for c in dimensions)
        missing = [(c, v) for c, v in zip(dimensions, key) if c in codes and v not in codes[c]]
        if missing:
            unknown += 1
            column, code = missing[0]
            rejected.append({"row": index, "message": f"unknown code '{code}' in column '{column}'"})
            continue
        if key in seen:
            duplicates += 1
            rejected.append({"row": index, "message": f"same dimension values as row {seen[key]}"})
            continue
        seen[key] = index
        observation = URIRef(base + observation_key(key))
        graph.add((observation_set, CUBE.observation, observation))
        graph.add((observation, RDF.type, CUBE.Observation))
        graph.add((observation, CUBE.observedBy, cube_uri))
        for (column, prop), value in zip(dimensions.items(), key):
            term = URIRef(codes[column][value]) if column in codes else to_term(row[column])
            graph.add((observation, prop, term))
        for column, prop in measures.items():
            if not _is_null(row.get(column)):
                graph.add((observation, prop, _measure(row[column])))
        for column, prop in attributes.items():
            if not _is_null(row.get(column)):
                graph.add((observation, prop, to_term(row[column])))

    if skipped:
        ctx.warn(f"Skipped {skipped} rows with an empty dimension value")
    for error in rejected[:20]:
        ctx.warn(f"Row {error['row']}: {error['message']}", {"row": error["row"]})
    rate = len(rejected) / len(table.rows) if table.rows else 0.0
    if rate > params["errorThreshold"]:
        raise DataQualityError(
            f"{len(rejected)} of {len(table.rows)} rows rejected: {duplicates} repeat an earlier row's dimension values, "
            f"{unknown} have codes missing from their code list ({rate:.1%} > threshold {params['errorThreshold']:.1%})",
            errors=[{"path": f"row {e['row']}", "message": e["message"]} for e in rejected[:20]],
        )

    generated = len(graph) - before
    ctx.log(f"Generated {generated} quads for {len(seen)} observations")
    return {
        "quads_generated": generated,
        "observations": len(seen),
        "rows_skipped": skipped,
        "duplicate_rows": duplicates,
        "unknown_codes": unknown,
    }


async def map_to_rdf(ctx: JobContext, params: dict) -> dict:
    table = ctx.require_table("map-to-rdf")
    base = params["baseUri"]
    properties = {c: _iri(p, "properties") for c, p in params["properties"].items()}
    datatypes = params.get("datatypes") or {}
    require_columns(table, properties, "properties")
    require_columns(table, datatypes, "datatypes")
    subject_column, subject_template = params.get("subjectColumn"), params.get("subjectTemplate")
    if subject_column:
        require_columns(table, [subject_column], "subjectColumn")
    if subject_template:
        require_columns(table, template_fields(subject_template), "subjectTemplate")
    type_uri = _iri(params["typeUri"], "typeUri") if params.get("typeUri") else None

    graph = ctx.graph
    before = len(graph)
    for index, row in enumerate(table.rows, start=1):
        if subject_column:
            local = slug(row.get(subject_column))
        elif subject_template:
            local = render_template(subject_template, row)
        else:
            local = str(index)
        subject = URIRef(base + local)
        if type_uri is not None:
            graph.add((subject, RDF.type, type_uri))
        for column, prop in properties.items():
            value = row.get(column)
            if not _is_null(value):
                graph.add((subject, prop, to_term(value, datatypes.get(column))))

    generated = len(graph) - before
    ctx.log(f"Mapped {len(table.rows)} rows to {generated} quads")
    return {"quads_generated": generated, "subjects": len(table.rows)}


HANDLERS = {
    "create-observations": create_observations,
    "map-to-rdf": map_to_rdf,
}
