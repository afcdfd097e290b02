"""In-process triplestore backed by an rdflib Dataset."""

from __future__ import annotations

import time

from rdflib import Dataset, Graph, URIRef

from rdfforge.core.errors import InputValidationError
from rdfforge.rdf import term_to_dict
from rdfforge.triplestore.base import ConnectionTestResult, QueryResult, TriplestoreConnector


class MemoryStore(TriplestoreConnector):
    def __init__(self, name: str = "memory", default_graph: str | None = None):
        super().__init__(name, default_graph)
        self._dataset = Dataset(default_union=True)
        self._graphs: set[str] = set()

    async def test(self) -> ConnectionTestResult:
        return ConnectionTestResult(success=True, latency_ms=0, message="in-memory store")

    async def list_graphs(self) -> list[dict]:
        graphs = []
        for uri in sorted(self._graphs):
            count = len(self._dataset.graph(URIRef(uri)))
            if count:
                graphs.append({"uri": uri, "triple_count": count})
        return graphs

    async def export_graph(self, graph_uri: str) -> Graph:
        exported = Graph()
        if graph_uri in self._graphs:
            for triple in self._dataset.graph(URIRef(graph_uri)):
                exported.add(triple)
        return exported

    async def _write(self, graph_uri: str, graph: Graph, mode: str) -> None:
        identifier = URIRef(graph_uri)
        if mode == "replace" and graph_uri in self._graphs:
            self._dataset.remove_graph(identifier)
        target = self._dataset.graph(identifier)
        for triple in graph:
            target.add(triple)
        self._graphs.add(graph_uri)

    async def delete_graph(self, graph_uri: str) -> None:
        async with self.graph_lock(graph_uri):
            if graph_uri in self._graphs:
                self._dataset.remove_graph(URIRef(graph_uri))
                self._graphs.discard(graph_uri)

    async def query(self, sparql: str, graph_uri: str | None = None) -> QueryResult:
        started = time.perf_counter()
        source = self._dataset.graph(URIRef(graph_uri)) if graph_uri else self._dataset
        try:
            result = source.query(sparql)
        except Exception as e:
            # pyparsing and rdflib raise several unrelated types for malformed queries
            raise InputValidationError(f"Query failed: {e}", errors=[{"path": "query", "message": str(e)}]) from e

        out = QueryResult()
        if result.type == "ASK":
            out.boolean = bool(result.askAnswer)
        elif result.type == "SELECT":
            out.variables = [str(v) for v in result.vars]
            for row in result:
                out.bindings.append({
                    str(var): term_to_dict(row[var]) for var in result.vars if row[var] is not None
                })
        else:
            out.variables = ["subject", "predicate", "object"]
            for s, p, o in result:
                out.bindings.append({"subject": term_to_dict(s), "predicate": term_to_dict(p), "object": term_to_dict(o)})
        out.execution_time = int((time.perf_counter() - started) * 1000)
        return out
