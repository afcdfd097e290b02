"""Pipeline repository: data access layer."""

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rdfforge.models.pipeline import Pipeline, PipelineVersion


class PipelineRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, version_fields: dict | None = None, **kwargs) -> Pipeline:
        """Insert a pipeline and its version 1 snapshot in one transaction."""
        pipeline = Pipeline(**kwargs)
        self.session.add(pipeline)
        await self.session.flush()
        self.session.add(PipelineVersion(
            pipeline_id=pipeline.id,
            version=pipeline.version,
            definition=pipeline.definition,
            definition_format=pipeline.definition_format,
            variables=pipeline.variables,
            **(version_fields or {}),
        ))
        await self.session.commit()
        await self.session.refresh(pipeline)
        return pipeline

    async def get_by_id(self, id: str) -> Pipeline | None:
        result = await self.session.execute(select(Pipeline).where(Pipeline.id == id))
        return result.scalar_one_or_none()

    async def get_by_name(self, name: str) -> Pipeline | None:
        result = await self.session.execute(select(Pipeline).where(Pipeline.name == name))
        return result.scalar_one_or_none()

    async def resolve(self, ref: str) -> Pipeline | None:
        return await self.get_by_id(ref) or await self.get_by_name(ref)

    async def find(
        self,
        search: str | None = None,
        status: str | None = None,
        tag: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[Pipeline], int]:
        query = select(Pipeline)
        if search:
            pattern = f"%{search}%"
            query = query.where(or_(Pipeline.name.ilike(pattern), Pipeline.description.ilike(pattern)))
        if status:
            query = query.where(Pipeline.status == status)
        result = await self.session.execute(query.order_by(Pipeline.created_at.desc()))
        pipelines = list(result.scalars().all())
        # Tags live in a JSON column; filtered in Python to stay portable across SQLite and Postgres
        if tag:
            pipelines = [p for p in pipelines if tag in (p.tags or [])]
        return pipelines[offset:offset + limit], len(pipelines)

    async def update(self, pipeline: Pipeline, **kwargs) -> Pipeline:
        for key, value in kwargs.items():
            if value is not None:
                setattr(pipeline, key, value)
        await self.session.commit()
        await self.session.refresh(pipeline)
        return pipeline

    async def reload(self, pipeline: Pipeline) -> Pipeline:
        """Re-read the row, picking up commits made by other sessions."""
        await self.session.refresh(pipeline)
        return pipeline

    async def bump_version(self, pipeline: Pipeline, expected_version: int, fields: dict, snapshot: dict) -> bool:
        """Compare-and-set the version counter and store the new snapshot.

        Returns False when another writer bumped the version first.
        """
        result = await self.session.execute(
            update(Pipeline)
            .where(Pipeline.id == pipeline.id, Pipeline.version == expected_version)
            .values(version=expected_version + 1, **fields)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.session.rollback()
            return False
        self.session.add(PipelineVersion(pipeline_id=pipeline.id, version=expected_version + 1, **snapshot))
        await self.session.commit()
        await self.session.refresh(pipeline)
        return True

    async def delete(self, pipeline: Pipeline) -> None:
        await self.session.execute(delete(PipelineVersion).where(PipelineVersion.pipeline_id == pipeline.id))
        await self.session.delete(pipeline)
        await self.session.commit()

    async def count(self) -> int:
        result = await self.session.execute(select(func.count(Pipeline.id)))
        return result.scalar_one()

    async def get_version(self, pipeline_id: str, version: int) -> PipelineVersion | None:
        result = await self.session.execute(
            select(PipelineVersion).where(
                PipelineVersion.pipeline_id == pipeline_id,
                PipelineVersion.version == version,
            )
        )
        return result.scalar_one_or_none()

    async def list_versions(self, pipeline_id: str) -> list[PipelineVersion]:
        result = await self.session.execute(
            select(PipelineVersion)
            .where(PipelineVersion.pipeline_id == pipeline_id)
            .order_by(PipelineVersion.version.desc())
        )
        return list(result.scalars().all())
