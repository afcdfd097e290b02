"""Dimension repository."""

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from rdfforge.models.dimension import Dimension, DimensionValue


class DimensionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Dimension:
        dimension = Dimension(**kwargs)
        self.session.add(dimension)
        await self.session.commit()
        await self.session.refresh(dimension)
        return dimension

    async def get_by_id(self, id: str) -> Dimension | None:
        result = await self.session.execute(select(Dimension).where(Dimension.id == id))
        return result.scalar_one_or_none()

    async def get_by_uri(self, uri: str) -> Dimension | None:
        result = await self.session.execute(select(Dimension).where(Dimension.uri == uri))
        return result.scalar_one_or_none()

    async def find(
        self,
        type: str | None = None,
        search: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[Dimension], int]:
        query = select(Dimension)
        count = select(func.count(Dimension.id))
        if type:
            query = query.where(Dimension.type == type)
            count = count.where(Dimension.type == type)
        if search:
            condition = or_(Dimension.name.ilike(f"%{search}%"), Dimension.uri.ilike(f"%{search}%"))
            query = query.where(condition)
            count = count.where(condition)
        result = await self.session.execute(query.order_by(Dimension.name).limit(limit).offset(offset))
        total = (await self.session.execute(count)).scalar_one()
        return list(result.scalars().all()), total

    async def update(self, dimension: Dimension, **kwargs) -> Dimension:
        for key, value in kwargs.items():
            if value is not None:
                setattr(dimension, key, value)
        await self.session.commit()
        await self.session.refresh(dimension)
        return dimension

    async def delete(self, dimension: Dimension) -> None:
        await self.session.execute(delete(DimensionValue).where(DimensionValue.dimension_id == dimension.id))
        await self.session.delete(dimension)
        await self.session.commit()

    # Values

    async def list_values(self, dimension_id: str) -> list[DimensionValue]:
        result = await self.session.execute(
            select(DimensionValue)
            .where(DimensionValue.dimension_id == dimension_id)
            .order_by(DimensionValue.sort_order, DimensionValue.code)
        )
        return list(result.scalars().all())

    async def add_values(self, dimension: Dimension, values: list[dict]) -> list[DimensionValue]:
        records = [DimensionValue(dimension_id=dimension.id, **value) for value in values]
        self.session.add_all(records)
        dimension.value_count = (dimension.value_count or 0) + len(records)
        await self.session.commit()
        await self.session.refresh(dimension)
        return records
