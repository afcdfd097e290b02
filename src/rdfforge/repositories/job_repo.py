"""Job repository: jobs, their step records and logs."""

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rdfforge.core.clock import utcnow
from rdfforge.core.errors import ConflictError
from rdfforge.models.job import ALLOWED_TRANSITIONS, LOG_LEVEL_ORDER, Job, JobLog, JobStatus, JobStep, StepStatus


class JobRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Job:
        job = Job(**kwargs)
        self.session.add(job)
        await self.session.commit()
        await self.session.refresh(job)
        return job

    async def get_by_id(self, id: str) -> Job | None:
        result = await self.session.execute(select(Job).where(Job.id == id))
        return result.scalar_one_or_none()

    async def find(
        self,
        status: str | None = None,
        pipeline_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Job], int]:
        query = select(Job)
        count = select(func.count(Job.id))
        if status:
            query = query.where(Job.status == status)
            count = count.where(Job.status == status)
        if pipeline_id:
            query = query.where(Job.pipeline_id == pipeline_id)
            count = count.where(Job.pipeline_id == pipeline_id)
        result = await self.session.execute(
            query.order_by(Job.created_at.desc()).limit(limit).offset(offset)
        )
        total = (await self.session.execute(count)).scalar_one()
        return list(result.scalars().all()), total

    async def list_by_status(self, status: str) -> list[Job]:
        result = await self.session.execute(
            select(Job).where(Job.status == status).order_by(Job.created_at)
        )
        return list(result.scalars().all())

    async def count_by_status(self, status: str, since: datetime | None = None) -> int:
        query = select(func.count(Job.id)).where(Job.status == status)
        if since is not None:
            query = query.where(Job.completed_at >= since)
        return (await self.session.execute(query)).scalar_one()

    async def count_active(self, pipeline_id: str) -> int:
        result = await self.session.execute(
            select(func.count(Job.id)).where(
                Job.pipeline_id == pipeline_id,
                Job.status.in_([JobStatus.PENDING.value, JobStatus.RUNNING.value]),
            )
        )
        return result.scalar_one()

    async def update(self, job: Job, **kwargs) -> Job:
        """Update fields of a non-terminal job.

        Raises:
            ConflictError: If the job is already completed, failed or cancelled
        """
        if job.is_terminal:
            raise ConflictError(f"Job '{job.id}' is {job.status} and can no longer be modified", {"status": job.status})
        for key, value in kwargs.items():
            if value is not None:
                setattr(job, key, value)
        await self.session.commit()
        await self.session.refresh(job)
        return job

    async def transition(self, job: Job, status: str, **fields) -> Job:
        """Move a job to a new status with a conditional update on its current status.

        Raises:
            ConflictError: If the transition is not allowed or another writer changed the status first
        """
        current = job.status
        if status not in ALLOWED_TRANSITIONS.get(current, set()):
            raise ConflictError(f"Job '{job.id}' cannot go from {current} to {status}", {"status": current})
        result = await self.session.execute(
            update(Job)
            .where(Job.id == job.id, Job.status == current)
            .values(status=status, **fields)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        await self.session.refresh(job)
        if result.rowcount != 1:
            raise ConflictError(f"Job '{job.id}' is {job.status}, expected {current}", {"status": job.status})
        return job

    async def claim(self, job: Job) -> bool:
        """Atomically take a pending job. False when it was claimed or cancelled elsewhere."""
        try:
            await self.transition(job, JobStatus.RUNNING.value, started_at=utcnow())
        except ConflictError:
            return False
        return True

    async def cancel_requested(self, job_id: str) -> bool:
        result = await self.session.execute(select(Job.cancel_requested).where(Job.id == job_id))
        return bool(result.scalar_one_or_none())

    # Steps

    async def create_steps(self, job_id: str, steps: list[dict]) -> list[JobStep]:
        records = [JobStep(job_id=job_id, position=index, **step) for index, step in enumerate(steps)]
        self.session.add_all(records)
        await self.session.commit()
        return records

    async def list_steps(self, job_id: str) -> list[JobStep]:
        result = await self.session.execute(
            select(JobStep).where(JobStep.job_id == job_id).order_by(JobStep.position)
        )
        return list(result.scalars().all())

    async def update_step(self, step: JobStep, **kwargs) -> JobStep:
        for key, value in kwargs.items():
            if value is not None:
                setattr(step, key, value)
        await self.session.commit()
        return step

    async def skip_steps(self, steps: list[JobStep]) -> None:
        for step in steps:
            if step.status in (StepStatus.PENDING.value, StepStatus.RUNNING.value):
                step.status = StepStatus.SKIPPED.value
        await self.session.commit()

    # Logs

    async def add_logs(self, job_id: str, entries: list[dict]) -> None:
        if not entries:
            return
        self.session.add_all([JobLog(job_id=job_id, **entry) for entry in entries])
        await self.session.commit()

    async def list_logs(
        self,
        job_id: str,
        level: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[JobLog], int]:
        query = select(JobLog).where(JobLog.job_id == job_id)
        count = select(func.count(JobLog.id)).where(JobLog.job_id == job_id)
        if level:
            levels = LOG_LEVEL_ORDER[LOG_LEVEL_ORDER.index(level):]
            query = query.where(JobLog.level.in_(levels))
            count = count.where(JobLog.level.in_(levels))
        result = await self.session.execute(
            query.order_by(JobLog.timestamp, JobLog.id).limit(limit).offset(offset)
        )
        total = (await self.session.execute(count)).scalar_one()
        return list(result.scalars().all()), total
