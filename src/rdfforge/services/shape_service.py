"""Shape service: the SHACL shape registry, templates, inference and generation."""

from __future__ import annotations

import logging
from typing import Any

from rdflib import URIRef
from sqlalchemy.ext.asyncio import AsyncSession

from rdfforge.core.errors import ConflictError, InputValidationError, NotFoundError
from rdfforge.core.locks import KeyedLocks
from rdfforge.models.shape import Shape, ShapeVersion
from rdfforge.rdf import parse_graph
from rdfforge.repositories.shape_repo import ShapeRepository
from rdfforge.shacl import ShapesGraph
from rdfforge.shacl.builder import generate_turtle, infer_shape_definition
from rdfforge.shacl.shapes import check_shapes, first_target_class
from rdfforge.shacl.templates import TEMPLATES, read_template

logger = logging.getLogger("rdfforge.shapes")

CONTENT_FORMATS = ("turtle", "jsonld")


def _checked(content: str, content_format: str) -> dict:
    """Syntax report for content that is about to be stored; raises when it is not usable."""
    if content_format not in CONTENT_FORMATS:
        raise InputValidationError(
            f"Unsupported shape format '{content_format}'",
            errors=[{"path": "content_format", "message": f"expected one of {list(CONTENT_FORMATS)}"}],
        )
    report = check_shapes(content, content_format)
    if not report["valid"]:
        raise InputValidationError("Invalid SHACL shape", errors=report["errors"])
    return report


def _first_shape_uri(content: str, content_format: str) -> str:
    for shape in ShapesGraph.parse(content, content_format).declared_shapes():
        if isinstance(shape, URIRef):
            return str(shape)
    raise InputValidationError(
        "Shape has no IRI; pass uri explicitly",
        errors=[{"path": "uri", "message": "no named shape in content"}],
    )


class ShapeService:
    def __init__(self, session: AsyncSession, locks: KeyedLocks):
        self.repo = ShapeRepository(session)
        self.locks = locks

    async def get(self, shape_id: str) -> Shape:
        shape = await self.repo.get_by_id(shape_id)
        if shape is None:
            raise NotFoundError("Shape", shape_id)
        return shape

    async def find(
        self,
        search: str | None = None,
        category: str | None = None,
        is_template: bool | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[Shape], int]:
        return await self.repo.find(search=search, category=category, is_template=is_template, limit=limit, offset=offset)

    async def categories(self) -> list[str]:
        return await self.repo.categories()

    async def templates(self) -> list[Shape]:
        shapes, _ = await self.repo.find(is_template=True, limit=1000)
        return shapes

    async def create(
        self,
        name: str,
        content: str,
        content_format: str = "turtle",
        uri: str | None = None,
        description: str | None = None,
        category: str | None = None,
        tags: list[str] | None = None,
        is_template: bool = False,
        created_by: str | None = None,
    ) -> Shape:
        _checked(content, content_format)
        shape = await self.repo.create(
            version_fields={"change_message": "Initial version"},
            uri=uri or _first_shape_uri(content, content_format),
            name=name,
            description=description,
            target_class=first_target_class(content, content_format),
            content=content,
            content_format=content_format,
            category=category,
            tags=tags or [],
            is_template=is_template,
            created_by=created_by,
        )
        logger.info(f"Created shape {shape.name} <{shape.uri}>")
        return shape

    async def update(
        self,
        shape_id: str,
        content: str | None = None,
        content_format: str | None = None,
        name: str | None = None,
        description: str | None = None,
        category: str | None = None,
        tags: list[str] | None = None,
        version: int | None = None,
        change_message: str | None = None,
    ) -> Shape:
        """Update a shape; new content is stored as the next version.

        Raises:
            ConflictError: If `version` is not the current version
        """
        shape = await self.get(shape_id)
        async with self.locks.hold(("shape", shape.id)):
            shape = await self.repo.reload(shape)
            shape_name = shape.name
            current = shape.version
            if version is not None and version != current:
                raise ConflictError(
                    f"Shape '{shape_name}' is at version {current}, not {version}",
                    {"expected": version, "actual": current},
                )

            if content is None and content_format is None:
                return await self.repo.update(shape, name=name, description=description, category=category, tags=tags)

            text = content if content is not None else shape.content
            fmt = content_format or shape.content_format
            _checked(text, fmt)
            fields: dict[str, Any] = {
                "content": text,
                "content_format": fmt,
                "target_class": first_target_class(text, fmt),
            }
            for key, value in (("name", name), ("description", description), ("category", category), ("tags", tags)):
                if value is not None:
                    fields[key] = value
            snapshot = {"content": text, "content_format": fmt, "change_message": change_message}
            if not await self.repo.bump_version(shape, current, fields, snapshot):
                raise ConflictError(f"Shape '{shape_name}' was modified concurrently", {"expected": current})

        logger.info(f"Shape {shape.name} saved as version {shape.version}")
        return shape

    async def delete(self, shape_id: str) -> None:
        shape = await self.get(shape_id)
        await self.repo.delete(shape)
        logger.info(f"Deleted shape {shape.name} ({shape.id})")

    async def versions(self, shape_id: str) -> list[ShapeVersion]:
        shape = await self.get(shape_id)
        return await self.repo.list_versions(shape.id)

    @staticmethod
    def validate_syntax(content: str, content_format: str = "turtle") -> dict:
        return check_shapes(content, content_format)

    @staticmethod
    def infer(data: str, data_format: str = "turtle", target_class: str | None = None, shape_uri: str | None = None) -> dict:
        """Derive a node shape from instance data: {definition, content}."""
        definition = infer_shape_definition(parse_graph(data, data_format), target_class, shape_uri)
        return {"definition": definition, "content": generate_turtle(definition)}

    @staticmethod
    def generate(definition: dict[str, Any]) -> str:
        return generate_turtle(definition)

    async def seed_templates(self) -> int:
        """Register built-in templates that are not in the registry yet."""
        added = 0
        for template in TEMPLATES:
            if await self.repo.get_by_uri(template["uri"]) is not None:
                continue
            await self.repo.create(
                version_fields={"change_message": "Built-in template"},
                uri=template["uri"],
                name=template["name"],
                description=template["description"],
                target_class=template["target_class"],
                content=read_template(template["file"]),
                content_format="turtle",
                category=template["category"],
                tags=["template"],
                is_template=True,
                created_by="system",
            )
            added += 1
        if added:
            logger.info(f"Seeded {added} shape templates")
        return added
