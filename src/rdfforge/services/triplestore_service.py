"""Triplestore service: persisted connections, health checks and queries."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from rdfforge.core.clock import utcnow
from rdfforge.core.errors import ConflictError, InputValidationError, NotFoundError
from rdfforge.models.triplestore import TriplestoreConnection, TriplestoreType
from rdfforge.repositories.triplestore_repo import TriplestoreRepository
from rdfforge.triplestore.registry import TriplestoreRegistry

logger = logging.getLogger("rdfforge.triplestore")

DEFAULT_CONNECTION = "default"


class TriplestoreService:
    def __init__(self, session: AsyncSession, registry: TriplestoreRegistry):
        self.repo = TriplestoreRepository(session)
        self.registry = registry

    async def get(self, ref: str) -> TriplestoreConnection:
        connection = await self.repo.resolve(ref)
        if connection is None:
            raise NotFoundError("Triplestore", ref)
        return connection

    async def list_all(self) -> list[TriplestoreConnection]:
        return await self.repo.list_all()

    async def create(
        self,
        name: str,
        type: str = TriplestoreType.MEMORY.value,
        url: str | None = None,
        graph_store_url: str | None = None,
        default_graph: str | None = None,
        auth_type: str = "none",
        auth_config: dict[str, Any] | None = None,
        is_default: bool = False,
    ) -> TriplestoreConnection:
        """Persist a connection. The first connection becomes the default.

        Raises:
            ConflictError: If the name is taken
            InputValidationError: If the type is unknown or a remote store lacks a url
        """
        if auth_type not in ("none", "basic", "apikey", "bearer"):
            raise InputValidationError(
                f"Unknown auth type '{auth_type}'",
                errors=[{"path": "auth_type", "message": "expected none, basic, apikey or bearer"}],
            )
        if await self.repo.get_by_name(name) is not None:
            raise ConflictError(f"Triplestore '{name}' already exists", {"name": name})

        candidate = TriplestoreConnection(
            name=name,
            type=type,
            url=url,
            graph_store_url=graph_store_url,
            default_graph=default_graph,
            auth_type=auth_type,
            auth_config=auth_config,
        )
        self.registry.build(candidate)

        if is_default:
            await self.repo.clear_default()
        elif await self.repo.get_default() is None:
            is_default = True
        connection = await self.repo.create(
            name=name,
            type=type,
            url=url,
            graph_store_url=graph_store_url,
            default_graph=default_graph,
            auth_type=auth_type,
            auth_config=auth_config,
            is_default=is_default,
        )
        logger.info(f"Registered triplestore '{name}' ({type}){' as default' if is_default else ''}")
        return connection

    async def delete(self, ref: str) -> None:
        connection = await self.get(ref)
        await self.registry.forget(connection.id)
        await self.repo.delete(connection)
        logger.info(f"Removed triplestore '{connection.name}'")

    async def health(self, ref: str) -> dict:
        connection = await self.get(ref)
        connector = await self.registry.get(connection.id)
        result = await connector.test()
        await self.repo.update(
            connection,
            health_status="healthy" if result.success else "unhealthy",
            last_health_check=utcnow(),
        )
        if not result.success:
            logger.warning(f"Triplestore '{connection.name}' unhealthy: {result.message}")
        return {"id": connection.id, "name": connection.name, **result.to_dict()}

    async def graphs(self, ref: str) -> list[dict]:
        connection = await self.get(ref)
        connector = await self.registry.get(connection.id)
        return await connector.list_graphs()

    async def sparql(self, ref: str, query: str, graph_uri: str | None = None) -> dict:
        if not query.strip():
            raise InputValidationError("Query is empty", errors=[{"path": "query", "message": "required"}])
        connection = await self.get(ref)
        connector = await self.registry.get(connection.id)
        result = await connector.query(query, graph_uri)
        return result.to_dict()

    async def resource(self, ref: str, uri: str, graph_uri: str | None = None) -> dict:
        connection = await self.get(ref)
        connector = await self.registry.get(connection.id)
        return await connector.describe(uri, graph_uri)

    async def seed(self, seeds: dict[str, dict[str, Any]]) -> int:
        """Create configured connections missing from the database, then make sure one exists."""
        added = 0
        for name, config in seeds.items():
            if await self.repo.get_by_name(name) is not None:
                continue
            fields = {k: v for k, v in config.items() if k in (
                "type", "url", "graph_store_url", "default_graph", "auth_type", "auth_config", "is_default",
            )}
            await self.create(name=name, **fields)
            added += 1
        if await self.repo.get_default() is None:
            await self.create(name=DEFAULT_CONNECTION, type=TriplestoreType.MEMORY.value, is_default=True)
            added += 1
        return added
