"""Tests for the forge CLI against a mocked daemon."""

import json

import httpx
import pytest
from typer.testing import CliRunner

from rdfforge.cli import main as cli

runner = CliRunner()


@pytest.fixture
def daemon(monkeypatch):
    """Route CLI requests to a handler; returns the list of recorded requests."""
    requests = []
    routes = {}

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        key = (request.method, request.url.path)
        if key not in routes:
            return httpx.Response(404, json={"detail": "not found", "kind": "not_found", "details": {}})
        return routes[key](request)

    def _client():
        return httpx.Client(base_url="http://forge.test", transport=httpx.MockTransport(handler))

    monkeypatch.setattr(cli, "_client", _client)
    return routes, requests


class TestCLI:
    def test_version(self):
        result = runner.invoke(cli.app, ["version"])
        assert result.exit_code == 0
        assert "rdfforge v" in result.output

    def test_run(self, daemon):
        routes, requests = daemon
        routes[("POST", "/api/v1/pipelines/sales/run")] = lambda r: httpx.Response(201, json={
            "id": "job-1", "pipeline_name": "sales", "pipeline_version": 3,
        })

        result = runner.invoke(cli.app, ["run", "sales", "--vars", '{"year": 2024}', "--priority", "8"])
        assert result.exit_code == 0, result.output
        assert "job-1" in result.output
        assert json.loads(requests[0].content) == {"variables": {"year": 2024}, "priority": 8, "dry_run": False}

    def test_run_rejects_bad_variables(self, daemon):
        result = runner.invoke(cli.app, ["run", "sales", "--vars", "[1, 2]"])
        assert result.exit_code == 1
        assert daemon[1] == []

    def test_error_details_are_printed(self, daemon, tmp_path):
        routes, _ = daemon
        routes[("POST", "/api/v1/pipelines/validate")] = lambda r: httpx.Response(422, json={
            "detail": "Invalid pipeline definition",
            "kind": "validation",
            "details": {"errors": [{"path": "steps[0].operation", "message": "Unknown operation"}]},
        })
        definition = tmp_path / "sales.yaml"
        definition.write_text("steps: []\n")

        result = runner.invoke(cli.app, ["validate", str(definition)])
        assert result.exit_code == 1
        assert "Invalid pipeline definition" in result.output
        assert "steps[0].operation" in result.output

    def test_deploy_creates_then_updates(self, daemon, tmp_path):
        routes, requests = daemon
        created = {"name": "sales", "version": 1, "steps_count": 2}
        routes[("POST", "/api/v1/pipelines")] = lambda r: httpx.Response(201, json=created)
        definition = tmp_path / "sales.ttl"
        definition.write_text("@prefix forge: <https://rdf-forge.dev/pipeline#> .\n")

        result = runner.invoke(cli.app, ["deploy", str(definition)])
        assert result.exit_code == 0, result.output
        body = json.loads(requests[-1].content)
        assert body["name"] == "sales"
        assert body["definition_format"] == "turtle"

        routes[("GET", "/api/v1/pipelines/sales")] = lambda r: httpx.Response(200, json=created)
        routes[("PUT", "/api/v1/pipelines/sales")] = lambda r: httpx.Response(200, json={**created, "version": 2})
        result = runner.invoke(cli.app, ["deploy", str(definition), "-m", "More steps"])
        assert result.exit_code == 0, result.output
        assert requests[-1].method == "PUT"
        assert json.loads(requests[-1].content)["change_message"] == "More steps"

    def test_shacl_with_shape_file(self, daemon, tmp_path):
        routes, requests = daemon
        routes[("POST", "/api/v1/validation/run")] = lambda r: httpx.Response(200, json={
            "conforms": False, "violation_count": 1, "warning_count": 0, "info_count": 0,
            "focus_node_count": 2, "execution_time": 3,
            "violations": [{
                "focus_node": "https://example.org/bob", "path": "http://schema.org/name", "value": None,
                "severity": "Violation", "constraint": "sh:MinCountConstraintComponent",
                "source_shape": "_:b0", "message": "Less than 1 values (0 found)",
            }],
        })
        data = tmp_path / "people.ttl"
        data.write_text("# data\n")
        shape = tmp_path / "shape.ttl"
        shape.write_text("# shape\n")

        result = runner.invoke(cli.app, ["shacl", str(data), "--shape", str(shape)])
        assert result.exit_code == 1
        assert "1 violations" in result.output
        body = json.loads(requests[0].content)
        assert body["shape_content"] == "# shape\n"
        assert "shape_id" not in body

    def test_health_when_daemon_is_down(self, monkeypatch):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        monkeypatch.setattr(
            cli, "_client",
            lambda: httpx.Client(base_url="http://forge.test", transport=httpx.MockTransport(refuse)),
        )
        result = runner.invoke(cli.app, ["health"])
        assert result.exit_code == 1
        assert "not running" in result.output
