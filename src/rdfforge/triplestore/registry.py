"""Triplestore registry: one live connector per persisted connection."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rdfforge.core.errors import InputValidationError, NotFoundError
from rdfforge.models.triplestore import TriplestoreConnection, TriplestoreType
from rdfforge.repositories.triplestore_repo import TriplestoreRepository
from rdfforge.triplestore.base import TriplestoreConnector
from rdfforge.triplestore.memory import MemoryStore
from rdfforge.triplestore.sparql import SparqlStore

if TYPE_CHECKING:
    from rdfforge.core.database import Database

logger = logging.getLogger("rdfforge.triplestore.registry")


class TriplestoreRegistry:
    """Builds connectors from connection rows and keeps them for the process lifetime.

    Connectors are cached by connection id so every job writing to the same
    store shares its per-graph locks.
    """

    def __init__(self, database: "Database"):
        self.database = database
        self._connectors: dict[str, TriplestoreConnector] = {}
        self._factories = {
            TriplestoreType.MEMORY.value: self._get_memory,
            TriplestoreType.FUSEKI.value: self._get_sparql,
            TriplestoreType.GRAPHDB.value: self._get_sparql,
            TriplestoreType.STARDOG.value: self._get_sparql,
            TriplestoreType.SPARQL.value: self._get_sparql,
        }

    @property
    def supported_types(self) -> list[str]:
        return list(self._factories)

    def build(self, connection: TriplestoreConnection) -> TriplestoreConnector:
        """Create a connector for a connection row.

        Raises:
            InputValidationError: If the type is unknown or a remote store has no URL
        """
        factory = self._factories.get(connection.type)
        if factory is None:
            raise InputValidationError(
                f"Unsupported triplestore type '{connection.type}'",
                errors=[{"path": "type", "message": f"expected one of {self.supported_types}"}],
            )
        return factory(connection)

    def register(self, connection_id: str, connector: TriplestoreConnector) -> None:
        self._connectors[connection_id] = connector

    async def forget(self, connection_id: str) -> None:
        connector = self._connectors.pop(connection_id, None)
        if connector is not None:
            await connector.disconnect()

    async def get(self, ref: str | None = None) -> TriplestoreConnector:
        """Connector for a connection id or name, or the default connection when ref is None.

        Raises:
            NotFoundError: If no such connection (or no default) exists
        """
        if ref is not None and ref in self._connectors:
            return self._connectors[ref]

        async with self.database.session() as session:
            repo = TriplestoreRepository(session)
            connection = await repo.resolve(ref) if ref is not None else await repo.get_default()
        if connection is None:
            raise NotFoundError("Triplestore", ref or "default")

        connector = self._connectors.get(connection.id)
        if connector is None:
            connector = self.build(connection)
            self._connectors[connection.id] = connector
            logger.info(f"Opened triplestore '{connection.name}' ({connection.type})")
        return connector

    async def close(self) -> None:
        for connection_id in list(self._connectors):
            await self.forget(connection_id)

    # Connector factories

    def _get_memory(self, connection: TriplestoreConnection) -> TriplestoreConnector:
        return MemoryStore(name=connection.name, default_graph=connection.default_graph)

    def _get_sparql(self, connection: TriplestoreConnection) -> TriplestoreConnector:
        if not connection.url:
            raise InputValidationError(
                f"Triplestore '{connection.name}' needs a url",
                errors=[{"path": "url", "message": "required for remote stores"}],
            )
        return SparqlStore(
            name=connection.name,
            url=connection.url,
            graph_store_url=connection.graph_store_url,
            default_graph=connection.default_graph,
            auth_type=connection.auth_type,
            auth_config=connection.auth_config,
        )
