"""Triplestore connection repository."""

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rdfforge.models.triplestore import TriplestoreConnection


class TriplestoreRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> TriplestoreConnection:
        connection = TriplestoreConnection(**kwargs)
        self.session.add(connection)
        await self.session.commit()
        await self.session.refresh(connection)
        return connection

    async def get_by_id(self, id: str) -> TriplestoreConnection | None:
        result = await self.session.execute(select(TriplestoreConnection).where(TriplestoreConnection.id == id))
        return result.scalar_one_or_none()

    async def get_by_name(self, name: str) -> TriplestoreConnection | None:
        result = await self.session.execute(select(TriplestoreConnection).where(TriplestoreConnection.name == name))
        return result.scalar_one_or_none()

    async def resolve(self, ref: str) -> TriplestoreConnection | None:
        """Look up by id first, then by name."""
        result = await self.session.execute(
            select(TriplestoreConnection)
            .where(or_(TriplestoreConnection.id == ref, TriplestoreConnection.name == ref))
            .order_by((TriplestoreConnection.id == ref).desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_default(self) -> TriplestoreConnection | None:
        result = await self.session.execute(
            select(TriplestoreConnection)
            .order_by(TriplestoreConnection.is_default.desc(), TriplestoreConnection.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_all(self) -> list[TriplestoreConnection]:
        result = await self.session.execute(select(TriplestoreConnection).order_by(TriplestoreConnection.name))
        return list(result.scalars().all())

    async def clear_default(self) -> None:
        await self.session.execute(update(TriplestoreConnection).values(is_default=False))
        await self.session.commit()

    async def update(self, connection: TriplestoreConnection, **kwargs) -> TriplestoreConnection:
        for key, value in kwargs.items():
            if value is not None:
                setattr(connection, key, value)
        await self.session.commit()
        await self.session.refresh(connection)
        return connection

    async def delete(self, connection: TriplestoreConnection) -> None:
        await self.session.delete(connection)
        await self.session.commit()
