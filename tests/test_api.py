"""Tests for the daemon app: health and error rendering."""

import pytest


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert "version" in data
        assert data["workers"]["size"] == 2
        assert [job["id"] for job in data["scheduler_jobs"]] == ["cron-tick"]


class TestErrors:
    @pytest.mark.asyncio
    async def test_request_validation_shape(self, idle_client):
        resp = await idle_client.post("/api/v1/jobs", json={"priority": "high"})
        assert resp.status_code == 422
        body = resp.json()
        assert body["kind"] == "validation"
        paths = {e["path"] for e in body["details"]["errors"]}
        assert "pipeline_id" in paths
        assert "priority" in paths

    @pytest.mark.asyncio
    async def test_not_found_shape(self, idle_client):
        resp = await idle_client.get("/api/v1/jobs/missing")
        assert resp.status_code == 404
        assert resp.json() == {
            "detail": "Job 'missing' not found",
            "kind": "not_found",
            "details": {"entity": "Job", "id": "missing"},
        }
