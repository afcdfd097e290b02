"""Remote triplestore over the SPARQL 1.1 Protocol and Graph Store Protocol."""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx
from rdflib import Graph

from rdfforge.core.errors import InfrastructureError, InputValidationError
from rdfforge.triplestore.base import ConnectionTestResult, QueryResult, TriplestoreConnector

logger = logging.getLogger("rdfforge.triplestore.sparql")

SPARQL_RESULTS_JSON = "application/sparql-results+json"


def _derive_graph_store_url(query_url: str) -> str:
    """Fuseki-style layout: <dataset>/query (or /sparql) -> <dataset>/data."""
    base = query_url.rstrip("/")
    for suffix in ("/query", "/sparql"):
        if base.endswith(suffix):
            return base[: -len(suffix)] + "/data"
    return base + "/data"


class SparqlStore(TriplestoreConnector):
    """Fuseki, GraphDB, Stardog or any store speaking the SPARQL protocols.

    Config:
        url: SPARQL query endpoint
        graph_store_url: Graph Store Protocol endpoint (derived from url when omitted)
        auth_type: none | basic | apikey | bearer
        auth_config: {username, password} | {header, key} | {token}
    """

    def __init__(
        self,
        name: str,
        url: str,
        graph_store_url: str | None = None,
        default_graph: str | None = None,
        auth_type: str = "none",
        auth_config: dict[str, Any] | None = None,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(name, default_graph)
        self.url = url
        self.graph_store_url = graph_store_url or _derive_graph_store_url(url)
        self.auth_type = auth_type
        self.auth_config = auth_config or {}
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _auth_kwargs(self) -> dict[str, Any]:
        headers: dict[str, str] = {}
        auth = None
        if self.auth_type == "basic":
            auth = httpx.BasicAuth(self.auth_config.get("username", ""), self.auth_config.get("password", ""))
        elif self.auth_type == "apikey":
            headers[self.auth_config.get("header", "X-API-Key")] = self.auth_config.get("key", "")
        elif self.auth_type == "bearer":
            headers["Authorization"] = f"Bearer {self.auth_config.get('token', '')}"
        return {"headers": headers, "auth": auth}

    async def connect(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport, **self._auth_kwargs())

    async def disconnect(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        await self.connect()
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise InfrastructureError(f"Triplestore '{self.name}' unreachable: {e}", {"url": url}) from e
        if response.status_code >= 500 or response.status_code in (401, 403, 429):
            raise InfrastructureError(
                f"Triplestore '{self.name}' returned HTTP {response.status_code}",
                {"url": url, "status": response.status_code, "body": response.text[:500]},
            )
        if response.status_code >= 400:
            raise InputValidationError(
                f"Triplestore '{self.name}' rejected the request: HTTP {response.status_code}",
                errors=[{"path": "request", "message": response.text[:500]}],
            )
        return response

    async def test(self) -> ConnectionTestResult:
        started = time.perf_counter()
        try:
            await self.query("ASK { ?s ?p ?o }")
        except (InfrastructureError, InputValidationError) as e:
            return ConnectionTestResult(False, int((time.perf_counter() - started) * 1000), e.message)
        return ConnectionTestResult(True, int((time.perf_counter() - started) * 1000), "ok")

    async def query(self, sparql: str, graph_uri: str | None = None) -> QueryResult:
        started = time.perf_counter()
        data = {"query": sparql}
        if graph_uri:
            data["default-graph-uri"] = graph_uri
        response = await self._request(
            "POST", self.url, data=data,
            headers={"Accept": f"{SPARQL_RESULTS_JSON}, text/turtle;q=0.5"},
        )

        out = QueryResult()
        if response.headers.get("content-type", "").startswith("text/turtle"):
            graph = Graph().parse(data=response.text, format="turtle")
            out.variables = ["subject", "predicate", "object"]
            out.bindings = [
                {"subject": {"type": "uri", "value": str(s)}, "predicate": {"type": "uri", "value": str(p)},
                 "object": {"type": "literal", "value": str(o)}}
                for s, p, o in graph
            ]
        else:
            payload = response.json()
            if "boolean" in payload:
                out.boolean = bool(payload["boolean"])
            else:
                out.variables = payload.get("head", {}).get("vars", [])
                out.bindings = payload.get("results", {}).get("bindings", [])
        out.execution_time = int((time.perf_counter() - started) * 1000)
        return out

    async def list_graphs(self) -> list[dict]:
        result = await self.query(
            "SELECT ?g (COUNT(*) AS ?count) WHERE { GRAPH ?g { ?s ?p ?o } } GROUP BY ?g ORDER BY ?g"
        )
        return [
            {"uri": row["g"]["value"], "triple_count": int(row["count"]["value"])}
            for row in result.bindings
            if "g" in row
        ]

    async def export_graph(self, graph_uri: str) -> Graph:
        response = await self._request(
            "GET", self.graph_store_url, params={"graph": graph_uri}, headers={"Accept": "application/n-triples"},
        )
        return Graph().parse(data=response.text, format="nt")

    async def _write(self, graph_uri: str, graph: Graph, mode: str) -> None:
        method = "PUT" if mode == "replace" else "POST"
        body = graph.serialize(format="nt")
        await self._request(
            method, self.graph_store_url, params={"graph": graph_uri},
            content=body.encode("utf-8"), headers={"Content-Type": "application/n-triples"},
        )
        logger.info(f"{method} {len(graph)} triples to <{graph_uri}> on '{self.name}'")

    async def delete_graph(self, graph_uri: str) -> None:
        async with self.graph_lock(graph_uri):
            await self._request("DELETE", self.graph_store_url, params={"graph": graph_uri})
