"""Shared test fixtures for RDF Forge tests."""

import asyncio
import json

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from rdfforge.core.config import ForgeSettings
from rdfforge.daemon.main import create_app
from rdfforge.daemon.runtime import ForgeRuntime
from rdfforge.repositories.job_repo import JobRepository


@pytest.fixture
def settings(tmp_path):
    return ForgeSettings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'forge.db'}",
        storage_dir=str(tmp_path / "data"),
        workers=2,
        cron_tick_seconds=3600,
        retry_attempts=2,
        retry_base_delay=0.01,
        retry_max_delay=0.05,
        shutdown_grace_seconds=5,
    )


@pytest_asyncio.fixture(scope="function")
async def runtime(settings):
    """A started runtime with two workers."""
    _runtime = ForgeRuntime(settings)
    await _runtime.start()
    yield _runtime
    await _runtime.stop()


@pytest_asyncio.fixture(scope="function")
async def idle_runtime(settings):
    """A started runtime without workers: created jobs stay pending."""
    _runtime = ForgeRuntime(settings.model_copy(update={"workers": 0}))
    await _runtime.start()
    yield _runtime
    await _runtime.stop()


@pytest_asyncio.fixture(scope="function")
async def client(runtime):
    """Async HTTP client pointed at an app backed by `runtime`."""
    transport = ASGITransport(app=create_app(runtime=runtime))
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture(scope="function")
async def idle_client(idle_runtime):
    transport = ASGITransport(app=create_app(runtime=idle_runtime))
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def wait_for_job(runtime):
    """Poll the database until a job reaches a terminal status."""

    async def _wait(job_id: str, timeout: float = 20.0):
        deadline = asyncio.get_running_loop().time() + timeout
        while True:
            async with runtime.database.session() as session:
                job = await JobRepository(session).get_by_id(job_id)
            if job is not None and job.is_terminal:
                return job
            if asyncio.get_running_loop().time() > deadline:
                raise AssertionError(f"Job {job_id} still {job.status if job else 'missing'} after {timeout}s")
            await asyncio.sleep(0.05)

    return _wait


# ─── Sample data and pipeline documents ───

@pytest.fixture
def sales_csv():
    """100 rows, one per (region, year) pair."""
    lines = ["region,year,value"]
    lines += [f"r{i % 10},{2000 + i // 10},{i}.5" for i in range(100)]
    return "\n".join(lines) + "\n"


@pytest.fixture
def cube_steps(sales_csv):
    """SOURCE -> TRANSFORM -> CUBE steps over the sample CSV."""

    def _steps(content: str | None = None) -> list[dict]:
        return [
            {"id": "load", "name": "Load sales", "operation": "load-csv",
             "params": {"content": content if content is not None else sales_csv}},
            {"id": "cast", "name": "Cast types", "operation": "cast-types",
             "params": {"types": {"year": "integer", "value": "decimal"}}},
            {"id": "cube", "name": "Build cube", "operation": "create-observations",
             "params": {
                 "cubeUri": "https://example.org/cube/sales",
                 "dimensions": {"region": "https://example.org/dim/region", "year": "https://example.org/dim/year"},
                 "measures": {"value": "https://example.org/measure/value"},
             }},
        ]

    return _steps


@pytest.fixture
def write_step():
    def _step(graph_uri: str = "https://example.org/graph/sales", mode: str = "replace", **params) -> dict:
        return {"id": "write", "name": "Write graph", "operation": "graph-store-write",
                "params": {"graphUri": graph_uri, "mode": mode, **params}}

    return _step


@pytest.fixture
def deploy():
    """Create a pipeline from a list of steps through the API and return its JSON."""

    async def _deploy(client, name: str, steps: list[dict], variables: dict | None = None):
        document = {"description": f"{name} test pipeline", "variables": variables or {}, "steps": steps}
        resp = await client.post("/api/v1/pipelines", json={
            "name": name,
            "definition": json.dumps(document),
            "definition_format": "json",
        })
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _deploy


OBSERVATION_SHAPE = """
@prefix sh: <http://www.w3.org/ns/shacl#> .
@prefix cube: <https://cube.link/> .
@prefix ex: <https://example.org/> .

ex:ObservationShape a sh:NodeShape ;
    sh:targetClass cube:Observation ;
    sh:property [ sh:path <https://example.org/measure/value> ; sh:minCount 1 ] ;
    sh:property [ sh:path <https://example.org/attr/unit> ; sh:minCount 1 ] .
"""

PERSON_SHAPE = """
@prefix sh: <http://www.w3.org/ns/shacl#> .
@prefix xsd: <http://www.w3.org/2001/XMLSchema#> .
@prefix schema: <http://schema.org/> .
@prefix ex: <https://example.org/> .

ex:PersonShape a sh:NodeShape ;
    sh:targetClass schema:Person ;
    sh:property [
        sh:path schema:name ;
        sh:minCount 1 ;
        sh:datatype xsd:string ;
    ] .
"""


@pytest.fixture
def observation_shape():
    """Requires a unit attribute the sample cube does not produce."""
    return OBSERVATION_SHAPE


@pytest.fixture
def person_shape():
    return PERSON_SHAPE
