"""Schedule repository."""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rdfforge.models.schedule import JobSchedule


class ScheduleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> JobSchedule:
        schedule = JobSchedule(**kwargs)
        self.session.add(schedule)
        await self.session.commit()
        await self.session.refresh(schedule)
        return schedule

    async def get_by_id(self, id: str) -> JobSchedule | None:
        result = await self.session.execute(select(JobSchedule).where(JobSchedule.id == id))
        return result.scalar_one_or_none()

    async def list_all(self, pipeline_id: str | None = None) -> list[JobSchedule]:
        query = select(JobSchedule)
        if pipeline_id:
            query = query.where(JobSchedule.pipeline_id == pipeline_id)
        result = await self.session.execute(query.order_by(JobSchedule.created_at))
        return list(result.scalars().all())

    async def list_due(self, now: datetime) -> list[JobSchedule]:
        result = await self.session.execute(
            select(JobSchedule)
            .where(JobSchedule.is_active.is_(True), JobSchedule.next_run.is_not(None), JobSchedule.next_run <= now)
            .order_by(JobSchedule.next_run)
        )
        return list(result.scalars().all())

    async def update(self, schedule: JobSchedule, **kwargs) -> JobSchedule:
        for key, value in kwargs.items():
            if value is not None:
                setattr(schedule, key, value)
        await self.session.commit()
        await self.session.refresh(schedule)
        return schedule

    async def delete(self, schedule: JobSchedule) -> None:
        await self.session.delete(schedule)
        await self.session.commit()
