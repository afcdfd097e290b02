"""Pipeline runner: executes the steps of one job in order and records the outcome."""

from __future__ import annotations

import asyncio
import logging
import traceback
from typing import Awaitable, Callable, TypeVar

from rdfforge.core.clock import elapsed_ms, utcnow
from rdfforge.core.config import ForgeSettings
from rdfforge.core.database import retry_writes
from rdfforge.core.errors import ForgeError, NotFoundError
from rdfforge.models.job import Job, JobStatus, JobStep, LogLevel, StepStatus
from rdfforge.pipeline.context import JobContext, StepResources, StepTrace
from rdfforge.pipeline.definition import StepDefinition
from rdfforge.pipeline.executor import execute_step
from rdfforge.pipeline.operations import OperationType
from rdfforge.repositories.job_repo import JobRepository
from rdfforge.repositories.pipeline_repo import PipelineRepository

logger = logging.getLogger("rdfforge.runner")

T = TypeVar("T")


def _as_forge_error(error: BaseException) -> ForgeError:
    if isinstance(error, ForgeError):
        return error
    return ForgeError(f"{type(error).__name__}: {error}")


def error_details(error: BaseException, context: dict) -> dict:
    forge_error = _as_forge_error(error)
    return {
        "stack_trace": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
        "context": {**context, **forge_error.details},
    }


class PipelineRunner:
    """Runs claimed jobs against their pinned pipeline version.

    Steps run strictly in declared order. A failed step fails the job and
    every later step is marked skipped. Cancellation is observed between
    steps only.
    """

    def __init__(
        self,
        resources: StepResources,
        settings: ForgeSettings,
        on_progress: Callable[[str, int], None] | None = None,
    ):
        self.resources = resources
        self.settings = settings
        self.on_progress = on_progress

    async def run(self, job_id: str, cancel_event: asyncio.Event | None = None) -> Job | None:
        """Claim and run a pending job. Returns None when the job could not be claimed."""
        async with self.resources.database.session() as session:
            jobs = JobRepository(session)
            job = await self._save(jobs, lambda: jobs.get_by_id(job_id))
            if job is None:
                logger.warning(f"Job {job_id} vanished before it could run")
                return None
            if not await self._save(jobs, lambda: jobs.claim(job)):
                logger.info(f"Job {job_id} is {job.status}; skipping")
                return None

            ctx = JobContext(
                job_id=job.id,
                pipeline_name=job.pipeline_name,
                variables=job.variables,
                resources=self.resources,
                dry_run=job.dry_run,
                cancel_event=cancel_event,
            )

            pipelines = PipelineRepository(session)
            version = await self._save(jobs, lambda: pipelines.get_version(job.pipeline_id, job.pipeline_version))
            if version is None:
                error = NotFoundError("Pipeline version", f"{job.pipeline_id}@{job.pipeline_version}")
                return await self._fail(jobs, job, ctx, error, {})

            steps = [StepDefinition.from_dict(s) for s in version.steps]
            records = await self._save(jobs, lambda: jobs.create_steps(job.id, [
                {"step_id": s.id, "name": s.name, "operation": s.operation, "operation_type": s.operation_type}
                for s in steps
            ]))
            pipeline = await self._save(jobs, lambda: pipelines.get_by_id(job.pipeline_id))
            if pipeline is not None:
                await self._save(jobs, lambda: pipelines.update(pipeline, last_run_at=job.started_at))

            logger.info(f"Running job {job.id} ({job.pipeline_name} v{job.pipeline_version}, {len(steps)} steps)")
            ctx.log(
                f"Job started: {job.pipeline_name} v{job.pipeline_version}, {len(steps)} steps"
                + (" (dry run)" if job.dry_run else "")
            )
            return await self._run_steps(jobs, job, ctx, steps, records)

    async def _run_steps(
        self,
        jobs: JobRepository,
        job: Job,
        ctx: JobContext,
        steps: list[StepDefinition],
        records: list[JobStep],
    ) -> Job:
        totals = {"rows_processed": 0, "quads_generated": 0}
        completed = 0

        for index, (step, record) in enumerate(zip(steps, records)):
            if ctx.cancelled or await self._save(jobs, lambda: jobs.cancel_requested(job.id)):
                ctx.current_step = None
                ctx.log(f"Cancelled before step '{step.name}'", LogLevel.WARN.value)
                remaining = records[index:]
                await self._save(jobs, lambda: jobs.skip_steps(remaining))
                await self._flush_logs(jobs, job.id, ctx)
                logger.info(f"Job {job.id} cancelled after {completed}/{len(steps)} steps")
                return await self._save(jobs, lambda: jobs.transition(
                    job,
                    JobStatus.CANCELLED.value,
                    completed_at=utcnow(),
                    duration_ms=elapsed_ms(job.started_at),
                    **totals,
                ))

            ctx.current_step = step.name
            trace = StepTrace(step_id=step.id, name=step.name, operation=step.operation, status="running", started_at=utcnow())
            await self._save(jobs, lambda: jobs.update_step(record, status=StepStatus.RUNNING.value, started_at=trace.started_at))
            ctx.log(f"Step started: {step.name} ({step.operation})")

            try:
                trace.metrics = await execute_step(ctx, step, self.settings)
            except Exception as e:
                trace.finished_at = utcnow()
                trace.duration_ms = elapsed_ms(trace.started_at, trace.finished_at)
                context = {"step_id": step.id, "step": step.name, "operation": step.operation, "position": index}
                return await self._fail(jobs, job, ctx, e, context, record, trace, records[index + 1:], totals)

            trace.finished_at = utcnow()
            trace.duration_ms = elapsed_ms(trace.started_at, trace.finished_at)
            trace.status = StepStatus.COMPLETED.value
            if step.operation_type == OperationType.SOURCE.value:
                totals["rows_processed"] += trace.metrics.get("rows_read", 0)
            elif step.operation_type == OperationType.CUBE.value:
                totals["quads_generated"] += trace.metrics.get("quads_generated", 0)

            await self._save(jobs, lambda: jobs.update_step(
                record,
                status=trace.status,
                completed_at=trace.finished_at,
                duration_ms=trace.duration_ms,
                metrics=trace.metrics,
            ))
            ctx.log(f"Step completed: {step.name} ({trace.duration_ms}ms)")
            await self._flush_logs(jobs, job.id, ctx)

            completed += 1
            progress = completed * 100 // len(steps)
            job = await self._save(jobs, lambda: jobs.update(job, progress=progress, **totals))
            self._report_progress(job.id, progress)

        ctx.current_step = None
        duration = elapsed_ms(job.started_at)
        ctx.log(f"Job completed in {duration}ms")
        await self._flush_logs(jobs, job.id, ctx)
        logger.info(f"Job {job.id} completed ({duration}ms, {totals['rows_processed']} rows, {totals['quads_generated']} quads)")
        return await self._save(jobs, lambda: jobs.transition(
            job,
            JobStatus.COMPLETED.value,
            progress=100,
            completed_at=utcnow(),
            duration_ms=duration,
            output_graph=ctx.output_graph,
            **totals,
        ))

    async def _fail(
        self,
        jobs: JobRepository,
        job: Job,
        ctx: JobContext,
        error: BaseException,
        context: dict,
        record: JobStep | None = None,
        trace: StepTrace | None = None,
        remaining: list[JobStep] | None = None,
        totals: dict | None = None,
    ) -> Job:
        forge_error = _as_forge_error(error)
        if forge_error is not error:
            logger.error(f"Unexpected error in job {job.id}", exc_info=error)
        else:
            logger.warning(f"Job {job.id} failed ({forge_error.kind.value}): {forge_error.message}")

        if record is not None:
            await self._save(jobs, lambda: jobs.update_step(
                record,
                status=StepStatus.FAILED.value,
                completed_at=trace.finished_at if trace else utcnow(),
                duration_ms=trace.duration_ms if trace else None,
                metrics=trace.metrics if trace and trace.metrics else None,
                error={"kind": forge_error.kind.value, "message": forge_error.message, "details": forge_error.details},
            ))
        ctx.log(f"Step failed: {forge_error.message}" if record else forge_error.message, LogLevel.ERROR.value, {"kind": forge_error.kind.value})
        if remaining:
            await self._save(jobs, lambda: jobs.skip_steps(remaining))
        ctx.current_step = None
        await self._flush_logs(jobs, job.id, ctx)

        return await self._save(jobs, lambda: jobs.transition(
            job,
            JobStatus.FAILED.value,
            completed_at=utcnow(),
            duration_ms=elapsed_ms(job.started_at),
            error_kind=forge_error.kind.value,
            error_message=forge_error.message,
            error_details=error_details(error, context),
            **(totals or {}),
        ))

    async def abort(self, job_id: str, error: ForgeError) -> Job | None:
        """Fail a running job from outside the step loop (worker crash, daemon restart)."""
        async with self.resources.database.session() as session:
            jobs = JobRepository(session)
            job = await self._save(jobs, lambda: jobs.get_by_id(job_id))
            if job is None or job.status != JobStatus.RUNNING.value:
                return job
            steps = await self._save(jobs, lambda: jobs.list_steps(job_id))
            await self._save(jobs, lambda: jobs.skip_steps(steps))
            entry = {
                "timestamp": utcnow(),
                "level": LogLevel.ERROR.value,
                "step": None,
                "message": error.message,
                "details": {"kind": error.kind.value},
            }
            await self._save(jobs, lambda: jobs.add_logs(job_id, [entry]))
            return await self._save(jobs, lambda: jobs.transition(
                job,
                JobStatus.FAILED.value,
                completed_at=utcnow(),
                duration_ms=elapsed_ms(job.started_at) if job.started_at else None,
                error_kind=error.kind.value,
                error_message=error.message,
                error_details={"stack_trace": None, "context": error.details},
            ))

    async def _save(self, jobs: JobRepository, operation: Callable[[], Awaitable[T]]) -> T:
        """Run one repository call, retrying database outages with backoff."""
        return await retry_writes(
            jobs.session,
            operation,
            self.settings.retry_attempts,
            self.settings.retry_base_delay,
            self.settings.retry_max_delay,
        )

    async def _flush_logs(self, jobs: JobRepository, job_id: str, ctx: JobContext) -> None:
        entries = ctx.drain_logs()
        await self._save(jobs, lambda: jobs.add_logs(job_id, entries))

    def _report_progress(self, job_id: str, progress: int) -> None:
        if self.on_progress is not None:
            self.on_progress(job_id, progress)
