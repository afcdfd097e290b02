"""Request dependencies: the process runtime and a database session."""

from typing import AsyncIterator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from rdfforge.daemon.runtime import ForgeRuntime


def get_runtime(request: Request) -> ForgeRuntime:
    return request.app.state.runtime


async def get_session(runtime: ForgeRuntime = Depends(get_runtime)) -> AsyncIterator[AsyncSession]:
    async with runtime.database.session() as session:
        yield session
