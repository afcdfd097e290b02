"""Schedule service: cron schedules attached to pipelines."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from rdfforge.core.clock import utcnow
from rdfforge.core.errors import InputValidationError, NotFoundError
from rdfforge.core.values import check_variables
from rdfforge.daemon.scheduler import next_fire_time
from rdfforge.models.schedule import JobSchedule
from rdfforge.repositories.pipeline_repo import PipelineRepository
from rdfforge.repositories.schedule_repo import ScheduleRepository

logger = logging.getLogger("rdfforge.scheduler")


def _check_priority(priority: int | None) -> None:
    if priority is not None and not 1 <= priority <= 10:
        raise InputValidationError(
            f"Priority must be between 1 and 10, got {priority}",
            errors=[{"path": "priority", "message": "expected 1-10"}],
        )


class ScheduleService:
    def __init__(self, session: AsyncSession, tz: str = "UTC"):
        self.repo = ScheduleRepository(session)
        self.pipelines = PipelineRepository(session)
        self.timezone = tz

    async def get(self, schedule_id: str) -> JobSchedule:
        schedule = await self.repo.get_by_id(schedule_id)
        if schedule is None:
            raise NotFoundError("Schedule", schedule_id)
        return schedule

    async def list_all(self, pipeline_id: str | None = None) -> list[JobSchedule]:
        if pipeline_id:
            pipeline = await self.pipelines.resolve(pipeline_id)
            if pipeline is None:
                raise NotFoundError("Pipeline", pipeline_id)
            pipeline_id = pipeline.id
        return await self.repo.list_all(pipeline_id=pipeline_id)

    async def create(
        self,
        pipeline_id: str,
        cron_expression: str,
        variables: dict | None = None,
        priority: int = 5,
        is_active: bool = True,
        now: datetime | None = None,
    ) -> JobSchedule:
        """Attach a cron schedule to a pipeline; next_run is the first fire time after `now`."""
        pipeline = await self.pipelines.resolve(pipeline_id)
        if pipeline is None:
            raise NotFoundError("Pipeline", pipeline_id)
        _check_priority(priority)
        next_run = next_fire_time(cron_expression, now or utcnow(), self.timezone)
        schedule = await self.repo.create(
            pipeline_id=pipeline.id,
            cron_expression=cron_expression.strip(),
            variables=check_variables(variables),
            priority=priority,
            is_active=is_active and next_run is not None,
            next_run=next_run,
        )
        logger.info(f"Scheduled {pipeline.name} with '{schedule.cron_expression}', next run {schedule.next_run}")
        return schedule

    async def update(
        self,
        schedule_id: str,
        cron_expression: str | None = None,
        variables: dict | None = None,
        priority: int | None = None,
        is_active: bool | None = None,
        now: datetime | None = None,
    ) -> JobSchedule:
        schedule = await self.get(schedule_id)
        _check_priority(priority)
        expression = cron_expression.strip() if cron_expression else schedule.cron_expression
        next_run = None
        # A new expression or re-enabling starts counting from now
        if cron_expression is not None or (is_active and not schedule.is_active):
            next_run = next_fire_time(expression, now or utcnow(), self.timezone)
        return await self.repo.update(
            schedule,
            cron_expression=expression,
            variables=check_variables(variables) if variables is not None else None,
            priority=priority,
            is_active=is_active,
            next_run=next_run,
        )

    async def delete(self, schedule_id: str) -> None:
        schedule = await self.get(schedule_id)
        await self.repo.delete(schedule)
        logger.info(f"Deleted schedule {schedule_id}")
