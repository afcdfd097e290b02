"""Tests for triplestore connectors and the triplestore API."""

import base64
from urllib.parse import parse_qs

import httpx
import pytest
from rdflib import Graph, Literal, URIRef

from rdfforge.core.errors import InfrastructureError, InputValidationError
from rdfforge.rdf import parse_graph
from rdfforge.triplestore.memory import MemoryStore
from rdfforge.triplestore.sparql import SparqlStore

PEOPLE = """
@prefix schema: <http://schema.org/> .
@prefix rdfs: <http://www.w3.org/2000/01/rdf-schema#> .
@prefix ex: <https://example.org/> .
ex:alice a schema:Person ; rdfs:label "Alice" ; schema:knows ex:bob .
ex:bob a schema:Person ; rdfs:label "Bob" .
"""

GRAPH = "https://example.org/graph/people"


def _triple(n: int):
    return (URIRef(f"https://example.org/s{n}"), URIRef("https://example.org/p"), Literal(n))


def _graph(*numbers: int) -> Graph:
    graph = Graph()
    for n in numbers:
        graph.add(_triple(n))
    return graph


class Recorder:
    """MockTransport handler that records requests and replays canned responses."""

    def __init__(self, *responses: httpx.Response):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


def _store(recorder: Recorder, **kwargs) -> SparqlStore:
    return SparqlStore(
        name="remote",
        url=kwargs.pop("url", "http://fuseki:3030/ds/query"),
        transport=httpx.MockTransport(recorder),
        **kwargs,
    )


class TestMemoryStore:
    @pytest.mark.asyncio
    async def test_replace_and_append(self):
        store = MemoryStore()
        assert await store.write_graph(GRAPH, _graph(1, 2)) == 2
        await store.write_graph(GRAPH, _graph(2, 3), mode="append")
        assert len(await store.export_graph(GRAPH)) == 3

        await store.write_graph(GRAPH, _graph(9))
        assert set(await store.export_graph(GRAPH)) == {_triple(9)}

    @pytest.mark.asyncio
    async def test_unknown_mode(self):
        with pytest.raises(ValueError):
            await MemoryStore().write_graph(GRAPH, _graph(1), mode="merge")

    @pytest.mark.asyncio
    async def test_graphs_are_isolated(self):
        store = MemoryStore()
        await store.write_graph("https://example.org/g/a", _graph(1))
        await store.write_graph("https://example.org/g/b", _graph(2, 3))
        assert await store.list_graphs() == [
            {"uri": "https://example.org/g/a", "triple_count": 1},
            {"uri": "https://example.org/g/b", "triple_count": 2},
        ]

        await store.delete_graph("https://example.org/g/a")
        assert [g["uri"] for g in await store.list_graphs()] == ["https://example.org/g/b"]
        assert len(await store.export_graph("https://example.org/g/a")) == 0

    @pytest.mark.asyncio
    async def test_queries(self):
        store = MemoryStore()
        await store.write_graph(GRAPH, parse_graph(PEOPLE))

        select = await store.query("SELECT ?label WHERE { ?s <http://www.w3.org/2000/01/rdf-schema#label> ?label } ORDER BY ?label")
        assert select.variables == ["label"]
        assert [b["label"]["value"] for b in select.bindings] == ["Alice", "Bob"]

        ask = await store.query("ASK { <https://example.org/alice> ?p ?o }")
        assert ask.boolean is True

        construct = await store.query(
            "CONSTRUCT { ?s a <https://example.org/Thing> } WHERE { ?s a <http://schema.org/Person> }", graph_uri=GRAPH,
        )
        assert construct.variables == ["subject", "predicate", "object"]
        assert len(construct.bindings) == 2

    @pytest.mark.asyncio
    async def test_malformed_query(self):
        with pytest.raises(InputValidationError):
            await MemoryStore().query("SELEKT nothing")

    @pytest.mark.asyncio
    async def test_describe(self):
        store = MemoryStore()
        await store.write_graph(GRAPH, parse_graph(PEOPLE))
        resource = await store.describe("https://example.org/alice")
        assert resource["types"] == ["http://schema.org/Person"]
        assert resource["label"] == "Alice"
        assert len(resource["properties"]) == 3


class TestSparqlStore:
    def test_graph_store_url(self):
        assert SparqlStore("a", "http://fuseki:3030/ds/query").graph_store_url == "http://fuseki:3030/ds/data"
        assert SparqlStore("b", "http://fuseki:3030/ds/sparql/").graph_store_url == "http://fuseki:3030/ds/data"
        assert SparqlStore("c", "http://graphdb/repositories/x").graph_store_url == "http://graphdb/repositories/x/data"
        assert SparqlStore("d", "http://h/q", graph_store_url="http://h/gsp").graph_store_url == "http://h/gsp"

    @pytest.mark.asyncio
    async def test_select(self):
        recorder = Recorder(httpx.Response(200, json={
            "head": {"vars": ["s"]},
            "results": {"bindings": [{"s": {"type": "uri", "value": "https://example.org/a"}}]},
        }))
        async with _store(recorder) as store:
            result = await store.query("SELECT ?s WHERE { ?s ?p ?o }", graph_uri=GRAPH)

        assert result.variables == ["s"]
        assert result.bindings == [{"s": {"type": "uri", "value": "https://example.org/a"}}]
        request = recorder.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "http://fuseki:3030/ds/query"
        form = parse_qs(request.content.decode())
        assert form["query"] == ["SELECT ?s WHERE { ?s ?p ?o }"]
        assert form["default-graph-uri"] == [GRAPH]

    @pytest.mark.asyncio
    async def test_ask(self):
        recorder = Recorder(httpx.Response(200, json={"head": {}, "boolean": False}))
        async with _store(recorder) as store:
            assert (await store.query("ASK { ?s ?p ?o }")).boolean is False

    @pytest.mark.asyncio
    async def test_list_graphs(self):
        recorder = Recorder(httpx.Response(200, json={
            "head": {"vars": ["g", "count"]},
            "results": {"bindings": [
                {"g": {"type": "uri", "value": GRAPH}, "count": {"type": "literal", "value": "42"}},
            ]},
        }))
        async with _store(recorder) as store:
            assert await store.list_graphs() == [{"uri": GRAPH, "triple_count": 42}]

    @pytest.mark.asyncio
    async def test_write_modes(self):
        recorder = Recorder(httpx.Response(204))
        async with _store(recorder) as store:
            assert await store.write_graph(GRAPH, _graph(1, 2)) == 2
            await store.write_graph(GRAPH, _graph(3), mode="append")
            await store.delete_graph(GRAPH)

        put, post, delete = recorder.requests
        assert (put.method, post.method, delete.method) == ("PUT", "POST", "DELETE")
        assert put.url.path == "/ds/data"
        assert put.url.params["graph"] == GRAPH
        assert put.headers["content-type"] == "application/n-triples"
        assert len(Graph().parse(data=put.content.decode(), format="nt")) == 2

    @pytest.mark.asyncio
    async def test_export(self):
        body = _graph(1, 2).serialize(format="nt")
        recorder = Recorder(httpx.Response(200, text=body, headers={"content-type": "application/n-triples"}))
        async with _store(recorder) as store:
            exported = await store.export_graph(GRAPH)
        assert len(exported) == 2
        assert recorder.requests[0].method == "GET"

    @pytest.mark.parametrize("auth_type,auth_config,header,expected", [
        ("bearer", {"token": "t0k"}, "authorization", "Bearer t0k"),
        ("apikey", {"header": "X-Store-Key", "key": "k3y"}, "x-store-key", "k3y"),
        ("basic", {"username": "u", "password": "p"}, "authorization", "Basic " + base64.b64encode(b"u:p").decode()),
    ])
    @pytest.mark.asyncio
    async def test_auth(self, auth_type, auth_config, header, expected):
        recorder = Recorder(httpx.Response(200, json={"boolean": True}))
        async with _store(recorder, auth_type=auth_type, auth_config=auth_config) as store:
            await store.query("ASK {}")
        assert recorder.requests[0].headers[header] == expected

    @pytest.mark.parametrize("status", [500, 503, 401, 403, 429])
    @pytest.mark.asyncio
    async def test_retryable_statuses(self, status):
        async with _store(Recorder(httpx.Response(status, text="busy"))) as store:
            with pytest.raises(InfrastructureError) as exc:
                await store.query("ASK {}")
        assert exc.value.details["status"] == status

    @pytest.mark.asyncio
    async def test_rejected_request(self):
        async with _store(Recorder(httpx.Response(400, text="Parse error"))) as store:
            with pytest.raises(InputValidationError):
                await store.query("SELEKT")

    @pytest.mark.asyncio
    async def test_unreachable(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        store = SparqlStore("remote", "http://fuseki:3030/ds/query", transport=httpx.MockTransport(refuse))
        try:
            with pytest.raises(InfrastructureError):
                await store.write_graph(GRAPH, _graph(1))
            result = await store.test()
            assert result.success is False
            assert "unreachable" in result.message
        finally:
            await store.disconnect()


class TestTriplestoreAPI:
    @pytest.mark.asyncio
    async def test_default_store(self, idle_client):
        resp = await idle_client.get("/api/v1/triplestores")
        assert resp.status_code == 200
        stores = resp.json()["triplestores"]
        assert [(s["name"], s["type"], s["is_default"]) for s in stores] == [("default", "memory", True)]

    @pytest.mark.asyncio
    async def test_create(self, idle_client):
        resp = await idle_client.post("/api/v1/triplestores", json={
            "name": "fuseki",
            "type": "fuseki",
            "url": "http://fuseki:3030/ds/query",
            "auth_type": "basic",
            "auth_config": {"username": "admin", "password": "secret"},
        })
        assert resp.status_code == 201
        store = resp.json()
        assert store["is_default"] is False
        assert store["health_status"] == "unknown"
        assert "auth_config" not in store

    @pytest.mark.asyncio
    async def test_create_rejects_bad_input(self, idle_client):
        resp = await idle_client.post("/api/v1/triplestores", json={"name": "default"})
        assert resp.status_code == 409
        resp = await idle_client.post("/api/v1/triplestores", json={"name": "remote", "type": "fuseki"})
        assert resp.status_code == 422
        resp = await idle_client.post("/api/v1/triplestores", json={"name": "x", "type": "oracle"})
        assert resp.status_code == 422
        resp = await idle_client.post("/api/v1/triplestores", json={"name": "y", "auth_type": "kerberos"})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_new_default(self, idle_client):
        await idle_client.post("/api/v1/triplestores", json={"name": "scratch", "is_default": True})
        stores = (await idle_client.get("/api/v1/triplestores")).json()["triplestores"]
        assert {s["name"]: s["is_default"] for s in stores} == {"default": False, "scratch": True}

    @pytest.mark.asyncio
    async def test_health(self, idle_client):
        resp = await idle_client.get("/api/v1/triplestores/default/health")
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert resp.json()["name"] == "default"

        stores = (await idle_client.get("/api/v1/triplestores")).json()["triplestores"]
        assert stores[0]["health_status"] == "healthy"
        assert stores[0]["last_health_check"] is not None

    @pytest.mark.asyncio
    async def test_sparql_graphs_and_resources(self, idle_client, idle_runtime):
        store = await idle_runtime.triplestores.get(None)
        await store.write_graph(GRAPH, parse_graph(PEOPLE))

        graphs = (await idle_client.get("/api/v1/triplestores/default/graphs")).json()
        assert graphs == {"graphs": [{"uri": GRAPH, "triple_count": 5}], "total": 1}

        resp = await idle_client.post("/api/v1/triplestores/default/sparql", json={
            "query": "SELECT ?s WHERE { ?s a <http://schema.org/Person> } ORDER BY ?s",
        })
        assert resp.status_code == 200
        assert [b["s"]["value"] for b in resp.json()["bindings"]] == [
            "https://example.org/alice", "https://example.org/bob",
        ]

        resp = await idle_client.get("/api/v1/triplestores/default/resource", params={
            "uri": "https://example.org/alice", "graph": GRAPH,
        })
        assert resp.json()["label"] == "Alice"
        assert resp.json()["types"] == ["http://schema.org/Person"]

    @pytest.mark.asyncio
    async def test_bad_queries(self, idle_client):
        resp = await idle_client.post("/api/v1/triplestores/default/sparql", json={"query": "   "})
        assert resp.status_code == 422
        resp = await idle_client.post("/api/v1/triplestores/default/sparql", json={"query": "SELEKT"})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_delete(self, idle_client):
        await idle_client.post("/api/v1/triplestores", json={"name": "scratch"})
        assert (await idle_client.delete("/api/v1/triplestores/scratch")).status_code == 204
        assert (await idle_client.get("/api/v1/triplestores/scratch/graphs")).status_code == 404
