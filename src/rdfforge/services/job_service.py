"""Job service: creation, cancellation, retry and inspection of jobs."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession

from rdfforge.core.clock import elapsed_ms, utcnow
from rdfforge.core.errors import ConflictError, InfrastructureError, InputValidationError, NotFoundError, ParameterError
from rdfforge.core.values import check_variables, resolve_variables
from rdfforge.models.job import Job, JobLog, JobStatus, JobStep, LogLevel, TriggeredBy
from rdfforge.models.pipeline import PipelineStatus
from rdfforge.pipeline.definition import StepDefinition
from rdfforge.pipeline.executor import resolve_params
from rdfforge.pipeline.operations import get_operation, validate_params
from rdfforge.pipeline.steps.source import SOURCE_FORMATS
from rdfforge.repositories.data_source_repo import DataSourceRepository
from rdfforge.repositories.dimension_repo import DimensionRepository
from rdfforge.repositories.job_repo import JobRepository
from rdfforge.repositories.pipeline_repo import PipelineRepository
from rdfforge.repositories.shape_repo import ShapeRepository
from rdfforge.shacl import load_shapes

if TYPE_CHECKING:
    from rdfforge.pipeline.runner import PipelineRunner
    from rdfforge.workers.pool import WorkerPool

logger = logging.getLogger("rdfforge.jobs")


class JobService:
    def __init__(self, session: AsyncSession, pool: "WorkerPool | None" = None):
        self.repo = JobRepository(session)
        self.pipelines = PipelineRepository(session)
        self.data_sources = DataSourceRepository(session)
        self.shapes = ShapeRepository(session)
        self.dimensions = DimensionRepository(session)
        self.pool = pool

    async def get(self, job_id: str) -> Job:
        job = await self.repo.get_by_id(job_id)
        if job is None:
            raise NotFoundError("Job", job_id)
        return job

    async def get_with_steps(self, job_id: str) -> tuple[Job, list[JobStep]]:
        job = await self.get(job_id)
        return job, await self.repo.list_steps(job_id)

    async def find(self, status: str | None = None, pipeline_id: str | None = None, limit: int = 50, offset: int = 0):
        return await self.repo.find(status=status, pipeline_id=pipeline_id, limit=limit, offset=offset)

    async def create(
        self,
        pipeline_id: str,
        variables: dict | None = None,
        priority: int = 5,
        dry_run: bool = False,
        triggered_by: str = TriggeredBy.API.value,
        created_by: str | None = None,
        pipeline_version: int | None = None,
        retry_of: str | None = None,
    ) -> Job:
        """Validate and persist a job, then queue it.

        Variables are resolved once here (pipeline defaults overridden by
        the given values) and every step's params are checked against the
        operation catalog. Nothing is persisted when any check fails.

        Raises:
            NotFoundError: If the pipeline or the pinned version does not exist
            InputValidationError: If variables or step params are invalid
        """
        pipeline = await self.pipelines.resolve(pipeline_id)
        if pipeline is None:
            raise NotFoundError("Pipeline", pipeline_id)
        if pipeline.status == PipelineStatus.ARCHIVED.value and retry_of is None:
            raise InputValidationError(
                f"Pipeline '{pipeline.name}' is archived",
                errors=[{"path": "pipeline_id", "message": "archived pipelines cannot run"}],
            )

        version_number = pipeline_version or pipeline.version
        version = await self.pipelines.get_version(pipeline.id, version_number)
        if version is None:
            raise NotFoundError("Pipeline version", f"{pipeline.name}@{version_number}")
        if not version.steps:
            raise InputValidationError(
                f"Pipeline '{pipeline.name}' v{version_number} has no steps",
                errors=[{"path": "steps", "message": "an executable pipeline needs at least one step"}],
            )

        resolved = resolve_variables(version.variables, check_variables(variables))
        await self._check_steps(version.steps, resolved)

        job = await self.repo.create(
            pipeline_id=pipeline.id,
            pipeline_name=pipeline.name,
            pipeline_version=version_number,
            variables=resolved,
            priority=priority,
            dry_run=dry_run,
            triggered_by=triggered_by,
            created_by=created_by,
            retry_of=retry_of,
        )
        await self.repo.add_logs(job.id, [{
            "timestamp": utcnow(),
            "level": LogLevel.INFO.value,
            "step": None,
            "message": f"Job created ({triggered_by}) for {pipeline.name} v{version_number}",
            "details": {"retry_of": retry_of} if retry_of else None,
        }])
        logger.info(f"Created job {job.id} for {pipeline.name} v{version_number} ({triggered_by}, priority={priority})")
        if self.pool is not None:
            self.pool.submit(job.id, job.priority)
        return job

    async def _check_steps(self, steps: list[dict], variables: dict) -> None:
        errors = []
        for raw in steps:
            step = StepDefinition.from_dict(raw)
            try:
                params = validate_params(get_operation(step.operation), resolve_params(step, variables))
            except InputValidationError as e:
                errors.extend(e.errors)
                continue
            except ParameterError as e:
                for problem in e.details.get("problems", [{"param": "operation", "message": e.message}]):
                    errors.append({"path": f"steps.{step.id}.params.{problem['param']}", "message": problem["message"]})
                continue
            errors.extend(await self._check_references(step, params))
        if errors:
            raise InputValidationError(f"Job rejected: {len(errors)} invalid step parameters", errors=errors)

    async def _check_references(self, step: StepDefinition, params: dict) -> list[dict]:
        """Problems with the shapes, data sources and dimensions a step refers to."""
        path = f"steps.{step.id}.params"
        errors = []
        if params.get("dataSourceId") and step.operation in SOURCE_FORMATS:
            source = await self.data_sources.get_by_id(params["dataSourceId"])
            if source is None:
                errors.append({"path": f"{path}.dataSourceId", "message": f"unknown data source '{params['dataSourceId']}'"})
            elif source.format not in SOURCE_FORMATS[step.operation]:
                errors.append({
                    "path": f"{path}.dataSourceId",
                    "message": f"'{step.operation}' cannot read {source.format} data source '{source.name}'",
                })
        if step.operation == "validate-shacl":
            if params.get("shapeContent"):
                try:
                    load_shapes(params["shapeContent"], params["shapeFormat"])
                except InputValidationError as e:
                    problems = e.errors or [{"message": e.message}]
                    errors.extend({"path": f"{path}.shapeContent", "message": p["message"]} for p in problems)
            elif params.get("shapeId") and await self.shapes.get_by_id(params["shapeId"]) is None:
                errors.append({"path": f"{path}.shapeId", "message": f"unknown shape '{params['shapeId']}'"})
        for column, dimension_id in (params.get("codelists") or {}).items():
            if await self.dimensions.get_by_id(dimension_id) is None:
                errors.append({"path": f"{path}.codelists.{column}", "message": f"unknown dimension '{dimension_id}'"})
        return errors

    async def cancel(self, job_id: str) -> Job:
        """Cancel a pending job outright, or ask a running one to stop at its next step boundary.

        Raises:
            ConflictError: If the job is already terminal
        """
        job = await self.get(job_id)
        if job.status == JobStatus.PENDING.value:
            try:
                job = await self.repo.transition(job, JobStatus.CANCELLED.value, completed_at=utcnow())
            except ConflictError:
                # Claimed by a worker in the meantime
                job = await self.get(job_id)
            else:
                if self.pool is not None:
                    self.pool.request_cancel(job.id)
                await self._log(job.id, "Job cancelled before it started", LogLevel.WARN)
                logger.info(f"Cancelled pending job {job.id}")
                return job

        if job.status == JobStatus.RUNNING.value:
            job = await self.repo.update(job, cancel_requested=True)
            signalled = self.pool.request_cancel(job.id) if self.pool is not None else False
            await self._log(job.id, "Cancellation requested; stopping at the next step boundary", LogLevel.WARN)
            logger.info(f"Cancel requested for running job {job.id} (signalled={signalled})")
            return job

        raise ConflictError(f"Job '{job.id}' is {job.status} and cannot be cancelled", {"status": job.status})

    async def retry(self, job_id: str, created_by: str | None = None) -> Job:
        """Create a new job from a failed or cancelled one. The original is left untouched."""
        job = await self.get(job_id)
        if job.status not in (JobStatus.FAILED.value, JobStatus.CANCELLED.value):
            raise ConflictError(f"Only failed or cancelled jobs can be retried; job is {job.status}", {"status": job.status})
        return await self.create(
            pipeline_id=job.pipeline_id,
            variables=job.variables,
            priority=job.priority,
            dry_run=job.dry_run,
            triggered_by=job.triggered_by,
            created_by=created_by or job.created_by,
            pipeline_version=job.pipeline_version,
            retry_of=job.id,
        )

    async def logs(self, job_id: str, level: str | None = None, limit: int = 100, offset: int = 0) -> tuple[list[JobLog], int]:
        await self.get(job_id)
        if level is not None and level not in [lvl.value for lvl in LogLevel]:
            raise InputValidationError(
                f"Unknown log level '{level}'",
                errors=[{"path": "level", "message": f"expected one of {[lvl.value for lvl in LogLevel]}"}],
            )
        return await self.repo.list_logs(job_id, level=level, limit=limit, offset=offset)

    async def metrics(self, job_id: str) -> dict:
        job, steps = await self.get_with_steps(job_id)
        duration = job.duration_ms
        if duration is None and job.started_at is not None:
            duration = elapsed_ms(job.started_at)
        return {
            "job_id": job.id,
            "status": job.status,
            "progress": job.progress,
            "rows_processed": job.rows_processed,
            "quads_generated": job.quads_generated,
            "duration_ms": duration,
            "steps": [
                {"name": s.name, "operation": s.operation, "status": s.status, "duration_ms": s.duration_ms, "metrics": s.metrics or {}}
                for s in steps
            ],
        }

    async def stats(self) -> dict:
        today = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        return {
            "pending": await self.repo.count_by_status(JobStatus.PENDING.value),
            "running": await self.repo.count_by_status(JobStatus.RUNNING.value),
            "completed_today": await self.repo.count_by_status(JobStatus.COMPLETED.value, since=today),
            "failed_today": await self.repo.count_by_status(JobStatus.FAILED.value, since=today),
            "queued": len(self.pool.queue) if self.pool is not None else 0,
        }

    async def recover(self, runner: "PipelineRunner") -> tuple[int, int]:
        """Re-queue pending jobs and fail jobs a previous process left running."""
        pending = await self.repo.list_by_status(JobStatus.PENDING.value)
        if self.pool is not None:
            for job in pending:
                self.pool.submit(job.id, job.priority)

        interrupted = await self.repo.list_by_status(JobStatus.RUNNING.value)
        for job in interrupted:
            await runner.abort(job.id, InfrastructureError("Job interrupted by daemon restart", {"recovered_at": utcnow().isoformat()}))
        if pending or interrupted:
            logger.info(f"Recovered {len(pending)} pending jobs, failed {len(interrupted)} interrupted jobs")
        return len(pending), len(interrupted)

    async def _log(self, job_id: str, message: str, level: LogLevel = LogLevel.INFO) -> None:
        await self.repo.add_logs(job_id, [{
            "timestamp": utcnow(),
            "level": level.value,
            "step": None,
            "message": message,
            "details": None,
        }])
