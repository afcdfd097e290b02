"""Base triplestore connector interface."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from rdflib import Graph

from rdfforge.core.locks import KeyedLocks


@dataclass
class QueryResult:
    variables: list[str] = field(default_factory=list)
    bindings: list[dict] = field(default_factory=list)
    boolean: bool | None = None
    execution_time: int = 0  # ms

    def to_dict(self) -> dict:
        return {
            "variables": self.variables,
            "bindings": self.bindings,
            "boolean": self.boolean,
            "execution_time": self.execution_time,
        }


@dataclass
class ConnectionTestResult:
    success: bool
    latency_ms: int
    message: str = ""

    def to_dict(self) -> dict:
        return {"success": self.success, "latency_ms": self.latency_ms, "message": self.message}


class TriplestoreConnector(ABC):
    """Read/write/query access to one RDF store.

    Writes to one named graph are serialized through a per-graph lock held
    by the connector, so concurrent jobs appending to the same graph never
    interleave.
    """

    def __init__(self, name: str, default_graph: str | None = None):
        self.name = name
        self.default_graph = default_graph
        self._graph_locks = KeyedLocks()

    def graph_lock(self, graph_uri: str) -> asyncio.Lock:
        return self._graph_locks.get(graph_uri)

    async def connect(self) -> None:
        """Establish connection."""

    async def disconnect(self) -> None:
        """Close connection."""

    @abstractmethod
    async def test(self) -> ConnectionTestResult:
        ...

    @abstractmethod
    async def list_graphs(self) -> list[dict]:
        """[{uri, triple_count}] for every non-empty named graph."""
        ...

    @abstractmethod
    async def export_graph(self, graph_uri: str) -> Graph:
        ...

    @abstractmethod
    async def _write(self, graph_uri: str, graph: Graph, mode: str) -> None:
        ...

    @abstractmethod
    async def delete_graph(self, graph_uri: str) -> None:
        ...

    @abstractmethod
    async def query(self, sparql: str, graph_uri: str | None = None) -> QueryResult:
        ...

    async def write_graph(self, graph_uri: str, graph: Graph, mode: str = "replace") -> int:
        """Write `graph` into the named graph. Returns the number of triples sent."""
        if mode not in ("replace", "append"):
            raise ValueError(f"Unknown write mode '{mode}'")
        async with self.graph_lock(graph_uri):
            await self._write(graph_uri, graph, mode)
        return len(graph)

    async def describe(self, uri: str, graph_uri: str | None = None) -> dict:
        """Outgoing properties of a resource: {uri, types, label, properties}."""
        scope = f"GRAPH <{graph_uri}> {{ <{uri}> ?p ?o }}" if graph_uri else f"<{uri}> ?p ?o"
        result = await self.query(f"SELECT ?p ?o WHERE {{ {scope} }}")
        types, label, properties = [], None, []
        for row in result.bindings:
            predicate, value = row["p"]["value"], row["o"]
            if predicate == "http://www.w3.org/1999/02/22-rdf-syntax-ns#type":
                types.append(value["value"])
            elif predicate == "http://www.w3.org/2000/01/rdf-schema#label" and label is None:
                label = value["value"]
            properties.append({"predicate": predicate, "value": value})
        return {"uri": uri, "types": types, "label": label, "properties": properties}

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, *args):
        await self.disconnect()
