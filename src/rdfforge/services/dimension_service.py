"""Dimension service: shared code lists that cube steps map column values onto."""

from __future__ import annotations

import logging
import re
from urllib.parse import quote

from rdflib import RDF, RDFS, SKOS, Graph, Literal, URIRef
from sqlalchemy.ext.asyncio import AsyncSession

from rdfforge.core.errors import ConflictError, InputValidationError, NotFoundError
from rdfforge.models.dimension import Dimension, DimensionType, DimensionValue
from rdfforge.rdf import serialize_graph
from rdfforge.repositories.dimension_repo import DimensionRepository

logger = logging.getLogger("rdfforge.dimensions")

_ABSOLUTE_IRI = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")


def _check_iri(value: str | None, path: str) -> None:
    if value is not None and not _ABSOLUTE_IRI.match(value):
        raise InputValidationError(
            f"'{value}' is not an absolute IRI",
            errors=[{"path": path, "message": "expected an absolute IRI"}],
        )


def value_uri(dimension: Dimension, code: str) -> str:
    base = dimension.base_uri or f"{dimension.uri.rstrip('/')}/"
    return base + quote(code, safe="")


class DimensionService:
    def __init__(self, session: AsyncSession):
        self.repo = DimensionRepository(session)

    async def get(self, dimension_id: str) -> Dimension:
        dimension = await self.repo.get_by_id(dimension_id)
        if dimension is None:
            raise NotFoundError("Dimension", dimension_id)
        return dimension

    async def find(self, type: str | None = None, search: str | None = None, limit: int = 100, offset: int = 0):
        return await self.repo.find(type=type, search=search, limit=limit, offset=offset)

    async def create(
        self,
        uri: str,
        name: str,
        description: str | None = None,
        type: str = DimensionType.CODED.value,
        base_uri: str | None = None,
    ) -> Dimension:
        """Register a dimension.

        Raises:
            InputValidationError: If an IRI is relative or the type is unknown
            ConflictError: If a dimension with the same URI exists
        """
        _check_iri(uri, "uri")
        _check_iri(base_uri, "base_uri")
        if type not in [t.value for t in DimensionType]:
            raise InputValidationError(
                f"Unknown dimension type '{type}'",
                errors=[{"path": "type", "message": f"expected one of {[t.value for t in DimensionType]}"}],
            )
        if await self.repo.get_by_uri(uri) is not None:
            raise ConflictError(f"Dimension '{uri}' already exists", {"uri": uri})
        dimension = await self.repo.create(uri=uri, name=name, description=description, type=type, base_uri=base_uri)
        logger.info(f"Registered dimension {name} <{uri}>")
        return dimension

    async def update(self, dimension_id: str, name: str | None = None, description: str | None = None) -> Dimension:
        dimension = await self.get(dimension_id)
        return await self.repo.update(dimension, name=name, description=description)

    async def delete(self, dimension_id: str) -> None:
        dimension = await self.get(dimension_id)
        await self.repo.delete(dimension)
        logger.info(f"Removed dimension {dimension.name} and its {dimension.value_count} values")

    async def values(self, dimension_id: str) -> list[DimensionValue]:
        await self.get(dimension_id)
        return await self.repo.list_values(dimension_id)

    async def add_values(self, dimension_id: str, values: list[dict]) -> list[DimensionValue]:
        """Add coded values in one batch. Parents may be existing codes or codes in the same batch.

        Raises:
            InputValidationError: On an empty or repeated code, an unknown parent or a parent cycle
        """
        dimension = await self.get(dimension_id)
        existing = {v.code: v.parent_code for v in await self.repo.list_values(dimension_id)}
        parents = dict(existing)
        errors = []
        rows = []
        for index, value in enumerate(values):
            code = (value.get("code") or "").strip()
            path = f"values[{index}]"
            if not code:
                errors.append({"path": f"{path}.code", "message": "code is required"})
                continue
            if code in parents:
                errors.append({"path": f"{path}.code", "message": f"code '{code}' already exists"})
                continue
            parents[code] = value.get("parent") or None
            _check_iri(value.get("uri"), f"{path}.uri")
            rows.append((index, {
                "code": code,
                "uri": value.get("uri") or value_uri(dimension, code),
                "label": value.get("label"),
                "parent_code": parents[code],
                "sort_order": value.get("sort_order") or 0,
            }))

        for index, row in rows:
            parent = row["parent_code"]
            if parent is not None and parent not in parents:
                errors.append({"path": f"values[{index}].parent", "message": f"unknown parent '{parent}'"})
            elif _has_cycle(row["code"], parents):
                errors.append({"path": f"values[{index}].parent", "message": f"'{row['code']}' would be its own ancestor"})
        if errors:
            raise InputValidationError(f"Invalid dimension values ({len(errors)} errors)", errors=errors)

        records = await self.repo.add_values(dimension, [row for _, row in rows])
        logger.info(f"Added {len(records)} values to dimension {dimension.name}")
        return records

    async def tree(self, dimension_id: str) -> list[dict]:
        """Values nested under their parents, roots first, siblings by sort order then code."""
        children: dict[str | None, list[dict]] = {}
        for value in await self.values(dimension_id):
            node = {"code": value.code, "uri": value.uri, "label": value.label, "children": []}
            children.setdefault(value.parent_code, []).append(node)
        for nodes in children.values():
            for node in nodes:
                node["children"] = children.get(node["code"], [])
        return children.get(None, [])

    async def codes(self, dimension_id: str) -> dict[str, str]:
        """Code to value IRI, for mapping column values in cube steps."""
        return {value.code: value.uri for value in await self.values(dimension_id)}

    async def export(self, dimension_id: str, fmt: str = "turtle") -> str:
        """The dimension as a SKOS concept scheme."""
        dimension = await self.get(dimension_id)
        scheme = URIRef(dimension.uri)
        graph = Graph()
        graph.bind("skos", SKOS)
        graph.add((scheme, RDF.type, SKOS.ConceptScheme))
        graph.add((scheme, RDFS.label, Literal(dimension.name)))
        values = await self.repo.list_values(dimension_id)
        uris = {value.code: URIRef(value.uri) for value in values}
        for value in values:
            concept = uris[value.code]
            graph.add((concept, RDF.type, SKOS.Concept))
            graph.add((concept, SKOS.inScheme, scheme))
            graph.add((concept, SKOS.notation, Literal(value.code)))
            if value.label:
                graph.add((concept, SKOS.prefLabel, Literal(value.label)))
            if value.parent_code is None:
                graph.add((scheme, SKOS.hasTopConcept, concept))
            else:
                graph.add((concept, SKOS.broader, uris[value.parent_code]))
                graph.add((uris[value.parent_code], SKOS.narrower, concept))
        return serialize_graph(graph, fmt)


def _has_cycle(code: str, parents: dict[str, str | None]) -> bool:
    seen = {code}
    parent = parents.get(code)
    while parent is not None:
        if parent in seen:
            return True
        seen.add(parent)
        parent = parents.get(parent)
    return False
