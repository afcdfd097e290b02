"""Validation service: runs SHACL validation outside of pipelines."""

from __future__ import annotations

import asyncio
import logging

from rdflib import Graph
from sqlalchemy.ext.asyncio import AsyncSession

from rdfforge.core.errors import InputValidationError, NotFoundError
from rdfforge.rdf import parse_graph
from rdfforge.repositories.shape_repo import ShapeRepository
from rdfforge.shacl import ShapesGraph, load_shapes, validate
from rdfforge.triplestore.registry import TriplestoreRegistry

logger = logging.getLogger("rdfforge.validation")


class ValidationService:
    def __init__(self, session: AsyncSession, triplestores: TriplestoreRegistry):
        self.shapes = ShapeRepository(session)
        self.triplestores = triplestores

    async def _shapes(self, shape_id: str | None, shape_content: str | None, shape_format: str) -> ShapesGraph:
        if shape_content:
            return load_shapes(shape_content, shape_format)
        if not shape_id:
            raise InputValidationError(
                "Either shape_id or shape_content is required",
                errors=[{"path": "shape_id", "message": "missing shape"}],
            )
        shape = await self.shapes.get_by_id(shape_id)
        if shape is None:
            raise NotFoundError("Shape", shape_id)
        return load_shapes(shape.content, shape.content_format)

    async def _data(
        self,
        data: str | None,
        data_format: str,
        triplestore_id: str | None,
        graph_uri: str | None,
    ) -> Graph:
        if data is not None:
            return parse_graph(data, data_format)
        if not graph_uri:
            raise InputValidationError(
                "Either data or graph_uri is required",
                errors=[{"path": "data", "message": "missing data graph"}],
            )
        store = await self.triplestores.get(triplestore_id)
        return await store.export_graph(graph_uri)

    async def run(
        self,
        shape_id: str | None = None,
        shape_content: str | None = None,
        shape_format: str = "turtle",
        data: str | None = None,
        data_format: str = "turtle",
        triplestore_id: str | None = None,
        graph_uri: str | None = None,
        max_violations: int | None = None,
    ) -> dict:
        """Validate inline data, or a named graph of a triplestore, against a shape."""
        shapes = await self._shapes(shape_id, shape_content, shape_format)
        graph = await self._data(data, data_format, triplestore_id, graph_uri)
        report = await asyncio.to_thread(validate, shapes, graph)
        logger.info(
            f"Validated {len(graph)} triples: conforms={report.conforms}, "
            f"{report.violation_count} violations in {report.execution_time}ms"
        )
        return report.to_dict(max_violations=max_violations)
