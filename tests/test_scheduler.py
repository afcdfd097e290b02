"""Tests for cron evaluation, the scheduler tick and the schedule API."""

from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from rdfforge.core.errors import InputValidationError
from rdfforge.daemon.scheduler import convert_day_of_week, next_fire_time
from rdfforge.repositories.job_repo import JobRepository
from rdfforge.repositories.schedule_repo import ScheduleRepository
from rdfforge.services.schedule_service import ScheduleService


class TestCronExpressions:
    def test_next_hour(self):
        assert next_fire_time("0 * * * *", datetime(2025, 1, 1, 12, 0, 30)) == datetime(2025, 1, 1, 13, 0)

    def test_strictly_after(self):
        assert next_fire_time("0 * * * *", datetime(2025, 1, 1, 13, 0)) == datetime(2025, 1, 1, 14, 0)

    def test_step_values(self):
        assert next_fire_time("*/15 * * * *", datetime(2025, 1, 1, 12, 7)) == datetime(2025, 1, 1, 12, 15)

    def test_weekday_counts_from_sunday(self):
        # 2025-01-01 is a Wednesday
        assert next_fire_time("0 9 * * 1", datetime(2025, 1, 1)) == datetime(2025, 1, 6, 9, 0)
        assert next_fire_time("0 0 * * 0", datetime(2025, 1, 1)) == datetime(2025, 1, 5, 0, 0)
        assert next_fire_time("0 0 * * 7", datetime(2025, 1, 1)) == datetime(2025, 1, 5, 0, 0)

    def test_timezone(self):
        # 09:00 in Zurich is 08:00 UTC in winter
        fire = next_fire_time("0 9 * * *", datetime(2025, 1, 1), tz="Europe/Zurich")
        assert fire == datetime(2025, 1, 1, 8, 0)

    @pytest.mark.parametrize("expression", ["* * *", "61 * * * *", "0 0 * * 9", "0 0 32 * *"])
    def test_invalid(self, expression):
        with pytest.raises(InputValidationError):
            next_fire_time(expression, datetime(2025, 1, 1))

    def test_convert_day_of_week(self):
        assert convert_day_of_week("*") == "*"
        assert convert_day_of_week("1-5") == "mon,tue,wed,thu,fri"
        assert convert_day_of_week("0,7") == "sun"
        assert convert_day_of_week("mon-fri") == "mon-fri"


class TestSchedulerTick:
    @pytest.mark.asyncio
    async def test_due_schedule_creates_job(self, idle_client, idle_runtime, deploy, cube_steps):
        await deploy(idle_client, "sales", cube_steps())
        async with idle_runtime.database.session() as session:
            schedule = await ScheduleService(session).create(
                "sales", "0 * * * *", variables={"run": "hourly"}, priority=7,
                now=datetime(2025, 1, 1, 12, 0, 30),
            )
        assert schedule.next_run == datetime(2025, 1, 1, 13, 0)

        assert await idle_runtime.scheduler.tick(datetime(2025, 1, 1, 12, 59)) == []

        created = await idle_runtime.scheduler.tick(datetime(2025, 1, 1, 13, 0))
        assert len(created) == 1
        async with idle_runtime.database.session() as session:
            job = await JobRepository(session).get_by_id(created[0])
            schedule = await ScheduleService(session).get(schedule.id)
        assert job.triggered_by == "schedule"
        assert job.created_by == "scheduler"
        assert job.priority == 7
        assert job.variables == {"run": "hourly"}
        assert job.status == "pending"
        assert schedule.last_run == datetime(2025, 1, 1, 13, 0)
        assert schedule.next_run == datetime(2025, 1, 1, 14, 0)
        assert created[0] in idle_runtime.pool.queue

        # Same instant again: nothing left to fire
        assert await idle_runtime.scheduler.tick(datetime(2025, 1, 1, 13, 0)) == []

    @pytest.mark.asyncio
    async def test_missed_runs_are_not_backfilled(self, idle_client, idle_runtime, deploy, cube_steps):
        await deploy(idle_client, "sales", cube_steps())
        async with idle_runtime.database.session() as session:
            schedule = await ScheduleService(session).create("sales", "0 * * * *", now=datetime(2025, 1, 1, 12, 0, 30))

        created = await idle_runtime.scheduler.tick(datetime(2025, 1, 1, 17, 30))
        assert len(created) == 1
        async with idle_runtime.database.session() as session:
            schedule = await ScheduleService(session).get(schedule.id)
        assert schedule.next_run == datetime(2025, 1, 1, 18, 0)

    @pytest.mark.asyncio
    async def test_database_outage_is_retried(self, idle_client, idle_runtime, deploy, cube_steps, monkeypatch):
        await deploy(idle_client, "sales", cube_steps())
        async with idle_runtime.database.session() as session:
            schedule = await ScheduleService(session).create("sales", "0 * * * *", now=datetime(2025, 1, 1, 12, 0, 30))

        failures = {"list_due": 1, "update": 1}

        def flaky(name):
            original = getattr(ScheduleRepository, name)

            async def call(self, *args, **kwargs):
                if failures[name]:
                    failures[name] -= 1
                    raise OperationalError("SELECT job_schedules", {}, Exception("database is locked"))
                return await original(self, *args, **kwargs)

            return call

        monkeypatch.setattr(ScheduleRepository, "list_due", flaky("list_due"))
        monkeypatch.setattr(ScheduleRepository, "update", flaky("update"))

        created = await idle_runtime.scheduler.tick(datetime(2025, 1, 1, 13, 0))
        assert len(created) == 1
        assert failures == {"list_due": 0, "update": 0}
        async with idle_runtime.database.session() as session:
            schedule = await ScheduleService(session).get(schedule.id)
        assert schedule.last_run == datetime(2025, 1, 1, 13, 0)
        assert schedule.next_run == datetime(2025, 1, 1, 14, 0)

    @pytest.mark.asyncio
    async def test_inactive_schedule_never_fires(self, idle_client, idle_runtime, deploy, cube_steps):
        await deploy(idle_client, "sales", cube_steps())
        async with idle_runtime.database.session() as session:
            await ScheduleService(session).create("sales", "0 * * * *", is_active=False, now=datetime(2025, 1, 1, 12, 0))

        assert await idle_runtime.scheduler.tick(datetime(2025, 1, 2)) == []

    @pytest.mark.asyncio
    async def test_loop_is_registered(self, idle_runtime):
        assert idle_runtime.scheduler.running
        assert [job["id"] for job in idle_runtime.scheduler.list_jobs()] == ["cron-tick"]


class TestScheduleAPI:
    @pytest.mark.asyncio
    async def test_create_and_list(self, idle_client, deploy, cube_steps):
        pipeline = await deploy(idle_client, "sales", cube_steps())
        resp = await idle_client.post("/api/v1/schedules", json={
            "pipeline_id": "sales",
            "cron_expression": "0 6 * * *",
            "priority": 3,
        })
        assert resp.status_code == 201
        schedule = resp.json()
        assert schedule["pipeline_id"] == pipeline["id"]
        assert schedule["is_active"] is True
        assert schedule["next_run"] is not None
        assert schedule["last_run"] is None

        listing = (await idle_client.get("/api/v1/schedules", params={"pipeline_id": "sales"})).json()
        assert listing["total"] == 1

    @pytest.mark.asyncio
    async def test_invalid_cron(self, idle_client, deploy, cube_steps):
        await deploy(idle_client, "sales", cube_steps())
        resp = await idle_client.post("/api/v1/schedules", json={"pipeline_id": "sales", "cron_expression": "every day"})
        assert resp.status_code == 422
        assert resp.json()["details"]["errors"][0]["path"] == "cron_expression"

    @pytest.mark.asyncio
    async def test_unknown_pipeline(self, idle_client):
        resp = await idle_client.post("/api/v1/schedules", json={"pipeline_id": "nope", "cron_expression": "0 * * * *"})
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_update_and_disable(self, idle_client, deploy, cube_steps):
        await deploy(idle_client, "sales", cube_steps())
        created = (await idle_client.post("/api/v1/schedules", json={
            "pipeline_id": "sales", "cron_expression": "0 6 * * *",
        })).json()

        resp = await idle_client.put(f"/api/v1/schedules/{created['id']}", json={"cron_expression": "30 6 * * *"})
        assert resp.status_code == 200
        assert resp.json()["cron_expression"] == "30 6 * * *"
        assert resp.json()["next_run"].endswith("06:30:00")

        resp = await idle_client.post(f"/api/v1/schedules/{created['id']}", json={"is_active": False})
        assert resp.json()["is_active"] is False

    @pytest.mark.asyncio
    async def test_delete(self, idle_client, deploy, cube_steps):
        await deploy(idle_client, "sales", cube_steps())
        created = (await idle_client.post("/api/v1/schedules", json={
            "pipeline_id": "sales", "cron_expression": "0 6 * * *",
        })).json()

        assert (await idle_client.delete(f"/api/v1/schedules/{created['id']}")).status_code == 204
        assert (await idle_client.get(f"/api/v1/schedules/{created['id']}")).status_code == 404

    @pytest.mark.asyncio
    async def test_pipeline_delete_removes_schedules(self, idle_client, deploy, cube_steps):
        await deploy(idle_client, "sales", cube_steps())
        created = (await idle_client.post("/api/v1/schedules", json={
            "pipeline_id": "sales", "cron_expression": "0 6 * * *",
        })).json()

        assert (await idle_client.delete("/api/v1/pipelines/sales")).status_code == 204
        assert (await idle_client.get(f"/api/v1/schedules/{created['id']}")).status_code == 404
