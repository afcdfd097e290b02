"""Cron loop: evaluates job schedules on a fixed tick and enqueues due jobs."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from rdfforge.core.clock import utcnow
from rdfforge.core.database import retry_writes
from rdfforge.core.errors import ForgeError, InputValidationError
from rdfforge.models.job import TriggeredBy
from rdfforge.repositories.schedule_repo import ScheduleRepository
from rdfforge.services.job_service import JobService

if TYPE_CHECKING:
    from rdfforge.core.database import Database
    from rdfforge.workers.pool import WorkerPool

logger = logging.getLogger("rdfforge.scheduler")

TICK_JOB_ID = "cron-tick"

# Standard cron counts weekdays from Sunday (0 and 7); APScheduler counts from Monday.
_WEEKDAYS = ["sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun"]


def _weekday(token: str, expression: str) -> int:
    if not token.isdigit() or int(token) > 7:
        raise InputValidationError(
            f"Invalid day-of-week '{token}' in cron expression '{expression}'",
            errors=[{"path": "cron_expression", "message": "day of week must be 0-7 or a name"}],
        )
    return int(token)


def convert_day_of_week(field: str, expression: str = "") -> str:
    """Rewrite numeric cron weekdays as names so APScheduler reads them the cron way."""
    if field in ("*", "?"):
        return "*"
    days: list[str] = []
    for item in field.split(","):
        base, _, step = item.partition("/")
        if base.replace("-", "").isalpha() or (not base[:1].isdigit() and base != "*"):
            days.append(item)
            continue
        if base == "*":
            first, last = 0, 6
        elif "-" in base:
            low, high = base.split("-", 1)
            first, last = _weekday(low, expression), _weekday(high, expression)
        else:
            first = _weekday(base, expression)
            last = 6 if step else first
        every = int(step) if step.isdigit() else 1
        for number in range(first, last + 1, every):
            days.append(_WEEKDAYS[number])
    return ",".join(dict.fromkeys(days))


def build_trigger(expression: str, tz: str = "UTC") -> CronTrigger:
    """CronTrigger for a standard 5-field expression (minute hour day month weekday).

    Raises:
        InputValidationError: If the expression is malformed
    """
    parts = expression.strip().split()
    if len(parts) != 5:
        raise InputValidationError(
            f"Invalid cron expression: {expression} (need 5 fields)",
            errors=[{"path": "cron_expression", "message": "expected minute hour day month weekday"}],
        )
    try:
        return CronTrigger(
            minute=parts[0],
            hour=parts[1],
            day=parts[2],
            month=parts[3],
            day_of_week=convert_day_of_week(parts[4], expression),
            timezone=tz,
        )
    except ValueError as e:
        raise InputValidationError(
            f"Invalid cron expression '{expression}': {e}",
            errors=[{"path": "cron_expression", "message": str(e)}],
        ) from e


def next_fire_time(expression: str, after: datetime, tz: str = "UTC") -> datetime | None:
    """First fire time strictly after `after` (naive UTC in, naive UTC out)."""
    trigger = build_trigger(expression, tz)
    start = after.replace(tzinfo=timezone.utc) + timedelta(microseconds=1)
    fire = trigger.get_next_fire_time(None, start)
    if fire is None:
        return None
    return fire.astimezone(timezone.utc).replace(tzinfo=None)


class CronScheduler:
    """One APScheduler interval job ticks every `tick_seconds` and enqueues due schedules.

    The loop never waits for jobs to finish; it only creates and queues them.
    Missed fire times are not backfilled: after a tick, next_run moves to the
    first occurrence strictly after now.
    """

    def __init__(
        self,
        database: "Database",
        pool: "WorkerPool",
        tick_seconds: int = 60,
        tz: str = "UTC",
        retry: tuple[int, float, float] = (3, 1.0, 10.0),
    ):
        self.database = database
        self.pool = pool
        self.tick_seconds = tick_seconds
        self.timezone = tz
        self.retry = retry  # (attempts, base delay, max delay) for database outages
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        if self.running:
            return
        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self._scheduler.add_job(
            self.tick,
            trigger=IntervalTrigger(seconds=self.tick_seconds),
            id=TICK_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.tick_seconds,
        )
        self._scheduler.start()
        logger.info(f"Scheduler started (tick every {self.tick_seconds}s)")

    def stop(self) -> None:
        if self.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        self._scheduler = None

    def list_jobs(self) -> list[dict]:
        if not self._scheduler:
            return []
        jobs = []
        for job in self._scheduler.get_jobs():
            next_run = job.next_run_time
            jobs.append({
                "id": job.id,
                "next_run": next_run.isoformat() if next_run else None,
                "trigger": str(job.trigger),
            })
        return jobs

    async def tick(self, now: datetime | None = None) -> list[str]:
        """Enqueue a job for every active schedule whose next_run has come. Returns the new job ids."""
        now = now or utcnow()
        created: list[str] = []
        async with self.database.session() as session:
            schedules = ScheduleRepository(session)
            due = await retry_writes(session, lambda: schedules.list_due(now), *self.retry)
            for schedule in due:
                try:
                    job = await retry_writes(session, lambda: JobService(session, self.pool).create(
                        pipeline_id=schedule.pipeline_id,
                        variables=schedule.variables,
                        priority=schedule.priority,
                        triggered_by=TriggeredBy.SCHEDULE.value,
                        created_by="scheduler",
                    ), *self.retry)
                    created.append(job.id)
                    logger.info(f"Schedule {schedule.id} fired: job {job.id}")
                except ForgeError as e:
                    logger.error(f"Schedule {schedule.id} could not create a job: {e.message}")
                next_run = next_fire_time(schedule.cron_expression, now, self.timezone)
                await retry_writes(session, lambda: schedules.update(
                    schedule,
                    last_run=now,
                    next_run=next_run,
                    is_active=None if next_run else False,
                ), *self.retry)
        return created
