"""Async database engine and session management."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from rdfforge.core.errors import InfrastructureError
from rdfforge.core.retry import with_backoff

T = TypeVar("T")


class Base(DeclarativeBase):
    pass


class Database:
    """Owns the engine and session factory for one daemon process."""

    def __init__(self, database_url: str):
        connect_args = {}
        if "sqlite" in database_url:
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = 30
        self.url = database_url
        self.engine: AsyncEngine = create_async_engine(database_url, echo=False, connect_args=connect_args)
        self.session_factory = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Session scope that maps driver outages to InfrastructureError."""
        async with self.session_factory() as session:
            try:
                yield session
            except OperationalError as e:
                await session.rollback()
                raise InfrastructureError(f"Database unavailable: {e.orig}") from e

    async def create_tables(self) -> None:
        # Import models so their tables are registered on Base.metadata
        import rdfforge.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


async def retry_writes(
    session: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    attempts: int,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
) -> T:
    """Run a repository call, retrying database outages with exponential backoff.

    A failed attempt rolls the session back, which expires everything it
    holds, so each loaded instance is re-read before the next attempt.

    Raises:
        InfrastructureError: When the database is still unavailable after all retries
    """
    stale = False

    async def attempt() -> T:
        nonlocal stale
        try:
            if stale:
                for instance in list(session.identity_map.values()):
                    await session.refresh(instance)
                stale = False
            return await operation()
        except OperationalError as e:
            await session.rollback()
            stale = True
            raise InfrastructureError(f"Database unavailable: {e.orig}") from e

    return await with_backoff(attempt, attempts, base_delay, max_delay, retry_on=(InfrastructureError,))
