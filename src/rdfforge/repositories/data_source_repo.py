"""Data source repository."""

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from rdfforge.models.data_source import DataSource


class DataSourceRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> DataSource:
        source = DataSource(**kwargs)
        self.session.add(source)
        await self.session.commit()
        await self.session.refresh(source)
        return source

    async def get_by_id(self, id: str) -> DataSource | None:
        result = await self.session.execute(select(DataSource).where(DataSource.id == id))
        return result.scalar_one_or_none()

    async def find(
        self,
        format: str | None = None,
        search: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[DataSource], int]:
        query = select(DataSource)
        count = select(func.count(DataSource.id))
        if format:
            query = query.where(DataSource.format == format)
            count = count.where(DataSource.format == format)
        if search:
            condition = or_(DataSource.name.ilike(f"%{search}%"), DataSource.original_filename.ilike(f"%{search}%"))
            query = query.where(condition)
            count = count.where(condition)
        result = await self.session.execute(
            query.order_by(DataSource.uploaded_at.desc()).limit(limit).offset(offset)
        )
        total = (await self.session.execute(count)).scalar_one()
        return list(result.scalars().all()), total

    async def update(self, source: DataSource, **kwargs) -> DataSource:
        for key, value in kwargs.items():
            if value is not None:
                setattr(source, key, value)
        await self.session.commit()
        await self.session.refresh(source)
        return source

    async def delete(self, source: DataSource) -> None:
        await self.session.delete(source)
        await self.session.commit()
