"""End-to-end job execution through the API and the worker pool."""

import asyncio

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from rdfforge.daemon.runtime import ForgeRuntime
from rdfforge.pipeline.steps import transform
from rdfforge.repositories.job_repo import JobRepository
from rdfforge.services.job_service import JobService
from rdfforge.triplestore.sparql import SparqlStore
from rdfforge.workers.pool import WorkerPool

GRAPH = "https://example.org/graph/sales"


async def _graph_size(client, graph_uri: str, store: str = "default") -> int:
    resp = await client.get(f"/api/v1/triplestores/{store}/graphs")
    assert resp.status_code == 200
    sizes = {g["uri"]: g["triple_count"] for g in resp.json()["graphs"]}
    return sizes.get(graph_uri, 0)


async def _run(client, pipeline: str, **body) -> dict:
    resp = await client.post("/api/v1/jobs", json={"pipeline_id": pipeline, **body})
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestJobExecution:
    @pytest.mark.asyncio
    async def test_csv_to_cube_to_graph(self, client, deploy, cube_steps, write_step, wait_for_job):
        await deploy(client, "sales", cube_steps() + [write_step()])
        job = await _run(client, "sales")
        assert job["status"] == "pending"
        assert job["triggered_by"] == "api"

        done = await wait_for_job(job["id"])
        assert done.status == "completed"
        assert done.progress == 100
        assert done.rows_processed == 100
        assert done.quads_generated == 3 + 100 * 6
        assert done.output_graph == GRAPH
        assert done.error_kind is None

        resp = await client.get(f"/api/v1/jobs/{job['id']}")
        detail = resp.json()
        assert [s["position"] for s in detail["steps"]] == [0, 1, 2, 3]
        assert [s["status"] for s in detail["steps"]] == ["completed"] * 4
        assert detail["steps"][0]["metrics"]["rows_read"] == 100
        assert detail["steps"][2]["metrics"]["observations"] == 100
        assert detail["steps"][3]["metrics"]["triples_written"] == 603
        assert detail["metrics"] == {"rows_processed": 100, "quads_generated": 603}

        assert await _graph_size(client, GRAPH) == 603

    @pytest.mark.asyncio
    async def test_progress_never_decreases(self, client, runtime, deploy, cube_steps, write_step, wait_for_job):
        seen = []
        runtime.runner.on_progress = lambda job_id, progress: seen.append((job_id, progress))
        await deploy(client, "sales", cube_steps() + [write_step()])
        job = await _run(client, "sales")
        assert job["progress"] == 0

        done = await wait_for_job(job["id"])
        progress = [p for job_id, p in seen if job_id == job["id"]]
        assert progress == sorted(progress)
        assert progress == [25, 50, 75, 100]
        assert done.progress == 100

    @pytest.mark.asyncio
    async def test_metrics_endpoint(self, client, deploy, cube_steps, write_step, wait_for_job):
        await deploy(client, "sales", cube_steps() + [write_step()])
        job = await _run(client, "sales")
        await wait_for_job(job["id"])

        resp = await client.get(f"/api/v1/jobs/{job['id']}/metrics")
        assert resp.status_code == 200
        metrics = resp.json()
        assert metrics["status"] == "completed"
        assert metrics["rows_processed"] == 100
        assert metrics["duration_ms"] is not None
        assert [s["operation"] for s in metrics["steps"]] == [
            "load-csv", "cast-types", "create-observations", "graph-store-write",
        ]

    @pytest.mark.asyncio
    async def test_logs_are_ordered_and_filterable(self, client, deploy, cube_steps, write_step, wait_for_job):
        await deploy(client, "sales", cube_steps() + [write_step()])
        job = await _run(client, "sales")
        await wait_for_job(job["id"])

        resp = await client.get(f"/api/v1/jobs/{job['id']}/logs")
        logs = resp.json()["logs"]
        assert logs[0]["message"].startswith("Job created")
        assert any(entry["step"] == "Build cube" for entry in logs)
        assert logs[-1]["message"].startswith("Job completed")
        assert resp.json()["total"] == len(logs)

        resp = await client.get(f"/api/v1/jobs/{job['id']}/logs", params={"level": "error"})
        assert resp.json()["logs"] == []

        resp = await client.get(f"/api/v1/jobs/{job['id']}/logs", params={"level": "loud"})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, client, deploy, cube_steps, write_step, wait_for_job):
        await deploy(client, "sales", cube_steps() + [write_step()])
        job = await _run(client, "sales", dry_run=True)

        done = await wait_for_job(job["id"])
        assert done.status == "completed"
        assert done.dry_run is True
        assert done.output_graph is None
        assert done.quads_generated == 603

        detail = (await client.get(f"/api/v1/jobs/{job['id']}")).json()
        assert detail["steps"][-1]["metrics"]["dry_run"] is True
        assert await _graph_size(client, GRAPH) == 0

    @pytest.mark.asyncio
    async def test_variables_override_defaults(self, client, deploy, cube_steps, write_step, wait_for_job):
        steps = cube_steps()
        steps[2]["params"]["cubeUri"] = "${cube}"
        await deploy(client, "sales", steps + [write_step(graph_uri="${graph}")], variables={
            "cube": "https://example.org/cube/default",
            "graph": GRAPH,
        })
        job = await _run(client, "sales", variables={"graph": "https://example.org/graph/other"})
        assert job["variables"] == {
            "cube": "https://example.org/cube/default",
            "graph": "https://example.org/graph/other",
        }

        done = await wait_for_job(job["id"])
        assert done.status == "completed"
        assert done.output_graph == "https://example.org/graph/other"
        assert await _graph_size(client, "https://example.org/graph/other") == 603

    @pytest.mark.asyncio
    async def test_concurrent_appends_keep_every_quad(self, client, deploy, cube_steps, write_step, wait_for_job):
        steps = cube_steps()
        steps[2]["params"]["cubeUri"] = "${cube}"
        await deploy(client, "sales", steps + [write_step(mode="append")], variables={"cube": "https://example.org/cube/a"})

        first = await _run(client, "sales", variables={"cube": "https://example.org/cube/a"})
        second = await _run(client, "sales", variables={"cube": "https://example.org/cube/b"})
        results = await asyncio.gather(wait_for_job(first["id"]), wait_for_job(second["id"]))

        assert [job.status for job in results] == ["completed", "completed"]
        assert await _graph_size(client, GRAPH) == 2 * 603


class TestJobFailures:
    @pytest.mark.asyncio
    async def test_validation_failure_skips_output(
        self, client, deploy, cube_steps, write_step, observation_shape, wait_for_job,
    ):
        validate = {"id": "check", "name": "Check cube", "operation": "validate-shacl",
                    "params": {"shapeContent": observation_shape, "maxViolations": 5}}
        await deploy(client, "sales", cube_steps() + [validate, write_step()])
        job = await _run(client, "sales")

        done = await wait_for_job(job["id"])
        assert done.status == "failed"
        assert done.error_kind == "data_quality"
        assert "100 violations" in done.error_message
        assert done.output_graph is None
        assert done.error_details["context"]["step_id"] == "check"

        detail = (await client.get(f"/api/v1/jobs/{job['id']}")).json()
        assert [s["status"] for s in detail["steps"]] == ["completed", "completed", "completed", "failed", "skipped"]
        failed = detail["steps"][3]
        assert failed["error"]["kind"] == "data_quality"
        assert len(failed["error"]["details"]["errors"]) == 5
        assert await _graph_size(client, GRAPH) == 0

    @pytest.mark.asyncio
    async def test_validation_warning_only_when_not_failing(
        self, client, deploy, cube_steps, write_step, observation_shape, wait_for_job,
    ):
        validate = {"id": "check", "operation": "validate-shacl",
                    "params": {"shapeContent": observation_shape, "failOnViolation": False}}
        await deploy(client, "sales", cube_steps() + [validate, write_step()])
        job = await _run(client, "sales")

        done = await wait_for_job(job["id"])
        assert done.status == "completed"
        assert await _graph_size(client, GRAPH) == 603

        warnings = (await client.get(f"/api/v1/jobs/{job['id']}/logs", params={"level": "warn"})).json()["logs"]
        assert any("SHACL validation failed" in entry["message"] for entry in warnings)

    @pytest.mark.asyncio
    async def test_malformed_rows_over_threshold_fail_the_source(self, client, deploy, cube_steps, wait_for_job):
        content = "region,year,value\nr1,2000,1\nr2,2001\nr3,2002\n"
        await deploy(client, "broken", cube_steps(content))
        job = await _run(client, "broken")

        done = await wait_for_job(job["id"])
        assert done.status == "failed"
        assert done.error_kind == "data_quality"
        assert done.rows_processed == 0

        detail = (await client.get(f"/api/v1/jobs/{job['id']}")).json()
        assert [s["status"] for s in detail["steps"]] == ["failed", "skipped", "skipped"]

    @pytest.mark.asyncio
    async def test_step_timeout(self, client, deploy, cube_steps, monkeypatch, wait_for_job):
        async def slow_cast(ctx, params):
            await asyncio.sleep(5)
            return {}

        monkeypatch.setitem(transform.HANDLERS, "cast-types", slow_cast)
        steps = cube_steps()
        steps[1]["timeoutSeconds"] = 0.2
        await deploy(client, "slow", steps)
        job = await _run(client, "slow")

        done = await wait_for_job(job["id"])
        assert done.status == "failed"
        assert done.error_kind == "timeout"
        assert "timeout" in done.error_message

    @pytest.mark.asyncio
    async def test_infrastructure_errors_are_retried(self, client, runtime, deploy, cube_steps, write_step, wait_for_job):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(503, text="warming up")
            return httpx.Response(204)

        runtime.triplestores.register("flaky", SparqlStore(
            name="flaky",
            url="http://store.test/ds/query",
            transport=httpx.MockTransport(handler),
        ))
        await deploy(client, "sales", cube_steps() + [write_step(triplestoreId="flaky")])
        job = await _run(client, "sales")

        done = await wait_for_job(job["id"])
        assert done.status == "completed"
        assert len(calls) == 2
        assert calls[-1].method == "PUT"
        assert calls[-1].url.path == "/ds/data"
        assert calls[-1].headers["content-type"] == "application/n-triples"

        warnings = (await client.get(f"/api/v1/jobs/{job['id']}/logs", params={"level": "warn"})).json()["logs"]
        assert any("retry 1/2" in entry["message"] for entry in warnings)

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, client, runtime, deploy, cube_steps, write_step, wait_for_job):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(503)

        runtime.triplestores.register("down", SparqlStore(
            name="down",
            url="http://store.test/ds/query",
            transport=httpx.MockTransport(handler),
        ))
        await deploy(client, "sales", cube_steps() + [write_step(triplestoreId="down")])
        job = await _run(client, "sales")

        done = await wait_for_job(job["id"])
        assert done.status == "failed"
        assert done.error_kind == "infrastructure"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_database_outage_during_bookkeeping_is_retried(
        self, client, deploy, cube_steps, write_step, monkeypatch, wait_for_job,
    ):
        original = JobRepository.update_step
        calls = []

        async def flaky_update_step(self, step, **kwargs):
            calls.append(step.step_id)
            if len(calls) == 2:
                raise OperationalError("UPDATE job_steps", {}, Exception("database is locked"))
            return await original(self, step, **kwargs)

        monkeypatch.setattr(JobRepository, "update_step", flaky_update_step)
        await deploy(client, "sales", cube_steps() + [write_step()])
        job = await _run(client, "sales")

        done = await wait_for_job(job["id"])
        assert done.status == "completed"
        assert done.progress == 100
        assert calls[:3] == ["load", "load", "load"]

        detail = (await client.get(f"/api/v1/jobs/{job['id']}")).json()
        assert [s["status"] for s in detail["steps"]] == ["completed"] * 4
        assert detail["steps"][0]["metrics"]["rows_read"] == 100

    @pytest.mark.asyncio
    async def test_database_outage_exhausts_retries(self, client, deploy, cube_steps, monkeypatch, wait_for_job):
        original = JobRepository.update_step

        async def failing_update_step(self, step, **kwargs):
            if kwargs.get("status") == "completed":
                raise OperationalError("UPDATE job_steps", {}, Exception("disk I/O error"))
            return await original(self, step, **kwargs)

        monkeypatch.setattr(JobRepository, "update_step", failing_update_step)
        await deploy(client, "sales", cube_steps())
        job = await _run(client, "sales")

        done = await wait_for_job(job["id"])
        assert done.status == "failed"
        assert done.error_kind == "infrastructure"
        assert "disk I/O error" in done.error_message

        detail = (await client.get(f"/api/v1/jobs/{job['id']}")).json()
        assert [s["status"] for s in detail["steps"]] == ["skipped"] * 3


class TestJobCreation:
    @pytest.mark.asyncio
    async def test_unknown_pipeline(self, idle_client):
        resp = await idle_client.post("/api/v1/jobs", json={"pipeline_id": "nope"})
        assert resp.status_code == 404
        assert resp.json()["kind"] == "not_found"

    @pytest.mark.asyncio
    async def test_undefined_variable_rejected(self, idle_client, deploy, cube_steps):
        steps = cube_steps()
        steps[2]["params"]["cubeUri"] = "${cube}"
        await deploy(idle_client, "sales", steps)

        resp = await idle_client.post("/api/v1/jobs", json={"pipeline_id": "sales"})
        assert resp.status_code == 422
        body = resp.json()
        assert body["kind"] == "validation"
        assert body["details"]["errors"][0]["path"] == "steps.cube.params"

        jobs = (await idle_client.get("/api/v1/jobs")).json()
        assert jobs["total"] == 0

    @pytest.mark.asyncio
    async def test_mistyped_variable_value_rejected(self, idle_client, deploy, cube_steps):
        steps = cube_steps()
        steps[0]["params"]["hasHeader"] = "${header}"
        await deploy(idle_client, "sales", steps, variables={"header": True})

        resp = await idle_client.post("/api/v1/jobs", json={"pipeline_id": "sales", "variables": {"header": "yes"}})
        assert resp.status_code == 422
        assert resp.json()["details"]["errors"][0]["path"] == "steps.load.params.hasHeader"

    @pytest.mark.asyncio
    async def test_dangling_references_rejected(self, idle_client, deploy, cube_steps):
        steps = cube_steps()
        steps[0]["params"] = {"dataSourceId": "no-such-source"}
        steps.append({"id": "check", "operation": "validate-shacl", "params": {"shapeId": "no-such-shape"}})
        await deploy(idle_client, "sales", steps)

        resp = await idle_client.post("/api/v1/jobs", json={"pipeline_id": "sales"})
        assert resp.status_code == 422
        assert resp.json()["details"]["errors"] == [
            {"path": "steps.load.params.dataSourceId", "message": "unknown data source 'no-such-source'"},
            {"path": "steps.check.params.shapeId", "message": "unknown shape 'no-such-shape'"},
        ]
        assert (await idle_client.get("/api/v1/jobs")).json()["total"] == 0

    @pytest.mark.asyncio
    async def test_malformed_inline_shape_rejected(self, idle_client, deploy, cube_steps, observation_shape):
        shape = observation_shape.replace("sh:minCount 1 ] ;", "sh:minCount \"one\" ] ;")
        steps = cube_steps() + [{"id": "check", "operation": "validate-shacl", "params": {"shapeContent": shape}}]
        await deploy(idle_client, "sales", steps)

        resp = await idle_client.post("/api/v1/jobs", json={"pipeline_id": "sales"})
        assert resp.status_code == 422
        errors = resp.json()["details"]["errors"]
        assert [e["path"] for e in errors] == ["steps.check.params.shapeContent"]
        assert errors[0]["message"] == "sh:minCount must be a non-negative integer, got one"

    @pytest.mark.asyncio
    async def test_priority_bounds(self, idle_client, deploy, cube_steps):
        await deploy(idle_client, "sales", cube_steps())
        resp = await idle_client.post("/api/v1/jobs", json={"pipeline_id": "sales", "priority": 11})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_archived_pipeline_cannot_run(self, idle_client, deploy, cube_steps):
        await deploy(idle_client, "sales", cube_steps())
        await idle_client.put("/api/v1/pipelines/sales", json={"status": "archived"})

        resp = await idle_client.post("/api/v1/jobs", json={"pipeline_id": "sales"})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_stats(self, idle_client, deploy, cube_steps):
        await deploy(idle_client, "sales", cube_steps())
        await _run(idle_client, "sales")
        await _run(idle_client, "sales")

        stats = (await idle_client.get("/api/v1/jobs/stats")).json()
        assert stats["pending"] == 2
        assert stats["running"] == 0
        assert stats["queued"] == 2

    @pytest.mark.asyncio
    async def test_list_filters(self, idle_client, deploy, cube_steps):
        await deploy(idle_client, "sales", cube_steps())
        job = await _run(idle_client, "sales")
        await _run(idle_client, "sales")
        await idle_client.post(f"/api/v1/jobs/{job['id']}/cancel")

        resp = await idle_client.get("/api/v1/jobs", params={"status": "cancelled"})
        assert resp.json()["total"] == 1
        assert resp.json()["jobs"][0]["id"] == job["id"]

        resp = await idle_client.get("/api/v1/jobs", params={"limit": 1})
        assert resp.json()["total"] == 2
        assert len(resp.json()["jobs"]) == 1


class TestCancelAndRetry:
    @pytest.mark.asyncio
    async def test_cancel_pending_job(self, idle_client, idle_runtime, deploy, cube_steps):
        await deploy(idle_client, "sales", cube_steps())
        job = await _run(idle_client, "sales")
        assert job["id"] in idle_runtime.pool.queue

        resp = await idle_client.post(f"/api/v1/jobs/{job['id']}/cancel")
        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"
        assert resp.json()["completed_at"] is not None
        assert job["id"] not in idle_runtime.pool.queue

        detail = (await idle_client.get(f"/api/v1/jobs/{job['id']}")).json()
        assert detail["steps"] == []

    @pytest.mark.asyncio
    async def test_cancel_running_job_at_step_boundary(
        self, client, deploy, cube_steps, write_step, monkeypatch, wait_for_job,
    ):
        started = asyncio.Event()
        release = asyncio.Event()
        cast = transform.HANDLERS["cast-types"]

        async def slow_cast(ctx, params):
            started.set()
            await release.wait()
            return await cast(ctx, params)

        monkeypatch.setitem(transform.HANDLERS, "cast-types", slow_cast)
        await deploy(client, "sales", cube_steps() + [write_step()])
        job = await _run(client, "sales")
        await asyncio.wait_for(started.wait(), timeout=10)

        resp = await client.post(f"/api/v1/jobs/{job['id']}/cancel")
        assert resp.status_code == 200
        assert resp.json()["status"] == "running"
        assert resp.json()["cancel_requested"] is True
        release.set()

        done = await wait_for_job(job["id"])
        assert done.status == "cancelled"
        assert done.completed_at is not None
        assert done.progress == 50

        detail = (await client.get(f"/api/v1/jobs/{job['id']}")).json()
        assert [s["status"] for s in detail["steps"]] == ["completed", "completed", "skipped", "skipped"]
        assert await _graph_size(client, GRAPH) == 0

        warnings = (await client.get(f"/api/v1/jobs/{job['id']}/logs", params={"level": "warn"})).json()["logs"]
        assert any("Cancelled before step 'Build cube'" in entry["message"] for entry in warnings)

    @pytest.mark.asyncio
    async def test_cancel_terminal_job_conflicts(self, idle_client, deploy, cube_steps):
        await deploy(idle_client, "sales", cube_steps())
        job = await _run(idle_client, "sales")
        await idle_client.delete(f"/api/v1/jobs/{job['id']}")

        resp = await idle_client.post(f"/api/v1/jobs/{job['id']}/cancel")
        assert resp.status_code == 409
        assert resp.json()["kind"] == "conflict"

    @pytest.mark.asyncio
    async def test_retry_cancelled_job(self, idle_client, deploy, cube_steps):
        await deploy(idle_client, "sales", cube_steps())
        job = await _run(idle_client, "sales", priority=8, variables={"note": "first"})
        await idle_client.post(f"/api/v1/jobs/{job['id']}/cancel")

        resp = await idle_client.post(f"/api/v1/jobs/{job['id']}/retry")
        assert resp.status_code == 201
        retried = resp.json()
        assert retried["id"] != job["id"]
        assert retried["retry_of"] == job["id"]
        assert retried["status"] == "pending"
        assert retried["priority"] == 8
        assert retried["variables"] == {"note": "first"}
        assert retried["pipeline_version"] == job["pipeline_version"]

        original = (await idle_client.get(f"/api/v1/jobs/{job['id']}")).json()
        assert original["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_retry_pending_job_conflicts(self, idle_client, deploy, cube_steps):
        await deploy(idle_client, "sales", cube_steps())
        job = await _run(idle_client, "sales")

        resp = await idle_client.post(f"/api/v1/jobs/{job['id']}/retry")
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_retry_failed_job_pins_version(
        self, client, deploy, cube_steps, write_step, observation_shape, wait_for_job,
    ):
        validate = {"id": "check", "operation": "validate-shacl", "params": {"shapeContent": observation_shape}}
        await deploy(client, "sales", cube_steps() + [validate, write_step()])
        job = await _run(client, "sales")
        assert (await wait_for_job(job["id"])).status == "failed"

        # v2 drops the validation step; the retry still runs v1
        await client.put("/api/v1/pipelines/sales", json={
            "definition": '{"steps": [{"operation": "load-csv", "params": {"content": "a\\n1\\n"}}]}',
            "definition_format": "json",
        })
        resp = await client.post(f"/api/v1/jobs/{job['id']}/retry")
        assert resp.status_code == 201
        retried = await wait_for_job(resp.json()["id"])
        assert retried.pipeline_version == 1
        assert retried.status == "failed"
        assert retried.retry_of == job["id"]

    @pytest.mark.asyncio
    async def test_unknown_job(self, idle_client):
        resp = await idle_client.get("/api/v1/jobs/missing")
        assert resp.status_code == 404
        resp = await idle_client.post("/api/v1/jobs/missing/cancel")
        assert resp.status_code == 404


class TestRecoveryAndShutdown:
    @pytest.mark.asyncio
    async def test_recover_requeues_pending_and_fails_running(self, idle_client, idle_runtime, deploy, cube_steps):
        await deploy(idle_client, "sales", cube_steps())
        pending = await _run(idle_client, "sales", priority=9)
        interrupted = await _run(idle_client, "sales")

        # Simulate a process that died halfway through the second job
        async with idle_runtime.database.session() as session:
            jobs = JobRepository(session)
            job = await jobs.get_by_id(interrupted["id"])
            assert await jobs.claim(job)
            await jobs.create_steps(job.id, [
                {"step_id": "load", "name": "Load sales", "operation": "load-csv", "operation_type": "SOURCE"},
                {"step_id": "cast", "name": "Cast types", "operation": "cast-types", "operation_type": "TRANSFORM"},
            ])

        pool = WorkerPool(idle_runtime.runner, size=0)
        async with idle_runtime.database.session() as session:
            assert await JobService(session, pool).recover(idle_runtime.runner) == (1, 1)
        assert pending["id"] in pool.queue
        assert interrupted["id"] not in pool.queue

        detail = (await idle_client.get(f"/api/v1/jobs/{interrupted['id']}")).json()
        assert detail["status"] == "failed"
        assert detail["error_kind"] == "infrastructure"
        assert detail["error_message"] == "Job interrupted by daemon restart"
        assert detail["completed_at"] is not None
        assert [s["status"] for s in detail["steps"]] == ["skipped", "skipped"]

        assert (await idle_client.get(f"/api/v1/jobs/{pending['id']}")).json()["status"] == "pending"

    @pytest.mark.asyncio
    async def test_restart_runs_jobs_left_pending(self, settings, idle_client, deploy, cube_steps):
        await deploy(idle_client, "sales", cube_steps())
        job = await _run(idle_client, "sales")

        restarted = ForgeRuntime(settings)
        await restarted.start()
        try:
            deadline = asyncio.get_running_loop().time() + 20
            while True:
                async with restarted.database.session() as session:
                    status = (await JobRepository(session).get_by_id(job["id"])).status
                if status == "completed" or asyncio.get_running_loop().time() > deadline:
                    break
                await asyncio.sleep(0.05)
        finally:
            await restarted.stop()
        assert status == "completed"

    @pytest.mark.asyncio
    async def test_drain_waits_for_in_flight_job(self, client, runtime, deploy, cube_steps, monkeypatch, wait_for_job):
        started = asyncio.Event()
        release = asyncio.Event()
        cast = transform.HANDLERS["cast-types"]

        async def slow_cast(ctx, params):
            started.set()
            await release.wait()
            return await cast(ctx, params)

        monkeypatch.setitem(transform.HANDLERS, "cast-types", slow_cast)
        await deploy(client, "sales", cube_steps())
        job = await _run(client, "sales")
        await asyncio.wait_for(started.wait(), timeout=10)
        assert runtime.pool.active_jobs == [job["id"]]

        drain = asyncio.create_task(runtime.pool.drain(grace=10))
        await asyncio.sleep(0.2)
        assert not drain.done()

        release.set()
        await asyncio.wait_for(drain, timeout=10)
        assert not runtime.pool.running
        assert runtime.pool.active_jobs == []
        assert (await wait_for_job(job["id"])).status == "completed"

    @pytest.mark.asyncio
    async def test_drain_gives_up_after_grace(self, client, runtime, deploy, cube_steps, monkeypatch):
        started = asyncio.Event()

        async def stuck_cast(ctx, params):
            started.set()
            await asyncio.Event().wait()

        monkeypatch.setitem(transform.HANDLERS, "cast-types", stuck_cast)
        await deploy(client, "sales", cube_steps())
        job = await _run(client, "sales")
        await asyncio.wait_for(started.wait(), timeout=10)

        await asyncio.wait_for(runtime.pool.drain(grace=0.2), timeout=10)
        assert not runtime.pool.running
        assert runtime.pool.active_jobs == []

        # Left running; the next start fails it through recovery
        async with runtime.database.session() as session:
            assert (await JobRepository(session).get_by_id(job["id"])).status == "running"
