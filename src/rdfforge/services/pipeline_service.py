"""Pipeline service: definitions, versioning and the operation catalog."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from rdfforge.core.errors import ConflictError, InputValidationError, NotFoundError
from rdfforge.core.locks import KeyedLocks
from rdfforge.models.pipeline import DefinitionFormat, Pipeline, PipelineStatus, PipelineVersion
from rdfforge.pipeline.definition import check_definition, parse_definition
from rdfforge.pipeline.operations import OPERATIONS, Operation, list_operations
from rdfforge.repositories.job_repo import JobRepository
from rdfforge.repositories.pipeline_repo import PipelineRepository
from rdfforge.repositories.schedule_repo import ScheduleRepository

logger = logging.getLogger("rdfforge.pipelines")


def _check_format(definition_format: str) -> str:
    formats = [f.value for f in DefinitionFormat]
    if definition_format not in formats:
        raise InputValidationError(
            f"Unknown definition format '{definition_format}'",
            errors=[{"path": "definition_format", "message": f"expected one of {formats}"}],
        )
    return definition_format


class PipelineService:
    def __init__(self, session: AsyncSession, locks: KeyedLocks):
        self.repo = PipelineRepository(session)
        self.jobs = JobRepository(session)
        self.schedules = ScheduleRepository(session)
        self.locks = locks

    async def get(self, pipeline_id: str) -> Pipeline:
        pipeline = await self.repo.resolve(pipeline_id)
        if pipeline is None:
            raise NotFoundError("Pipeline", pipeline_id)
        return pipeline

    async def find(
        self,
        search: str | None = None,
        status: str | None = None,
        tag: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Pipeline], int]:
        return await self.repo.find(search=search, status=status, tag=tag, limit=limit, offset=offset)

    async def create(
        self,
        name: str,
        definition: str,
        definition_format: str = DefinitionFormat.YAML.value,
        description: str | None = None,
        tags: list[str] | None = None,
        status: str = PipelineStatus.ACTIVE.value,
        created_by: str | None = None,
    ) -> Pipeline:
        """Parse the definition and store the pipeline with its version 1 snapshot.

        Raises:
            InputValidationError: If the definition does not parse or check
            ConflictError: If the name is taken
        """
        parsed = parse_definition(definition, _check_format(definition_format))
        if await self.repo.get_by_name(name) is not None:
            raise ConflictError(f"Pipeline '{name}' already exists", {"name": name})

        pipeline = await self.repo.create(
            version_fields={"steps": parsed.steps_as_dicts(), "change_message": "Initial version"},
            name=name,
            description=description or parsed.description,
            definition=definition,
            definition_format=definition_format,
            variables=parsed.variables,
            tags=tags or [],
            status=status,
            steps_count=len(parsed.steps),
            created_by=created_by,
        )
        logger.info(f"Created pipeline {pipeline.name} ({pipeline.id}) with {pipeline.steps_count} steps")
        return pipeline

    async def update(
        self,
        pipeline_id: str,
        definition: str | None = None,
        definition_format: str | None = None,
        description: str | None = None,
        tags: list[str] | None = None,
        status: str | None = None,
        version: int | None = None,
        change_message: str | None = None,
    ) -> Pipeline:
        """Update metadata, and store a new version when the definition changes.

        `version` is the version the caller last read; a mismatch means
        someone else saved in between.

        Raises:
            ConflictError: On a version mismatch
        """
        pipeline = await self.get(pipeline_id)
        async with self.locks.hold(("pipeline", pipeline.id)):
            pipeline = await self.repo.reload(pipeline)
            name = pipeline.name
            current = pipeline.version
            if version is not None and version != current:
                raise ConflictError(
                    f"Pipeline '{name}' is at version {current}, not {version}",
                    {"expected": version, "actual": current},
                )

            if definition is None and definition_format is None:
                return await self.repo.update(pipeline, description=description, tags=tags, status=status)

            text = definition if definition is not None else pipeline.definition
            fmt = _check_format(definition_format or pipeline.definition_format)
            parsed = parse_definition(text, fmt)
            fields = {
                "definition": text,
                "definition_format": fmt,
                "variables": parsed.variables,
                "steps_count": len(parsed.steps),
            }
            for key, value in (("description", description), ("tags", tags), ("status", status)):
                if value is not None:
                    fields[key] = value
            snapshot = {
                "definition": text,
                "definition_format": fmt,
                "variables": parsed.variables,
                "steps": parsed.steps_as_dicts(),
                "change_message": change_message,
            }
            if not await self.repo.bump_version(pipeline, current, fields, snapshot):
                raise ConflictError(f"Pipeline '{name}' was modified concurrently", {"expected": current})

        logger.info(f"Pipeline {pipeline.name} saved as version {pipeline.version}")
        return pipeline

    async def delete(self, pipeline_id: str) -> None:
        """Delete a pipeline with its versions and schedules. Job history is kept.

        Raises:
            ConflictError: While the pipeline has pending or running jobs
        """
        pipeline = await self.get(pipeline_id)
        active = await self.jobs.count_active(pipeline.id)
        if active:
            raise ConflictError(
                f"Pipeline '{pipeline.name}' has {active} pending or running jobs",
                {"active_jobs": active},
            )
        for schedule in await self.schedules.list_all(pipeline_id=pipeline.id):
            await self.schedules.delete(schedule)
        await self.repo.delete(pipeline)
        logger.info(f"Deleted pipeline {pipeline.name} ({pipeline.id})")

    async def duplicate(self, pipeline_id: str, name: str | None = None) -> Pipeline:
        source = await self.get(pipeline_id)
        name = name or f"{source.name}-copy"
        return await self.create(
            name=name,
            definition=source.definition,
            definition_format=source.definition_format,
            description=source.description,
            tags=list(source.tags or []),
            status=PipelineStatus.DRAFT.value,
            created_by=source.created_by,
        )

    def validate(self, definition: str, definition_format: str = DefinitionFormat.YAML.value) -> dict:
        return check_definition(definition, _check_format(definition_format))

    async def versions(self, pipeline_id: str) -> list[PipelineVersion]:
        pipeline = await self.get(pipeline_id)
        return await self.repo.list_versions(pipeline.id)

    async def version(self, pipeline_id: str, number: int) -> PipelineVersion:
        pipeline = await self.get(pipeline_id)
        snapshot = await self.repo.get_version(pipeline.id, number)
        if snapshot is None:
            raise NotFoundError("Pipeline version", f"{pipeline.name}@{number}")
        return snapshot

    @staticmethod
    def operations(op_type: str | None = None) -> list[Operation]:
        return sorted(
            (op for op in list_operations() if op_type is None or op.type.value == op_type.upper()),
            key=lambda op: (op.type.value, op.name),
        )

    @staticmethod
    def operation(name: str) -> Operation:
        if name not in OPERATIONS:
            raise NotFoundError("Operation", name)
        return OPERATIONS[name]
