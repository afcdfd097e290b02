"""Per-entity asyncio locks."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator


class KeyedLocks:
    """Hands out one asyncio.Lock per key, e.g. ("pipeline", id) or a graph URI."""

    def __init__(self):
        self._locks: dict[object, asyncio.Lock] = defaultdict(asyncio.Lock)

    def get(self, key: object) -> asyncio.Lock:
        return self._locks[key]

    @asynccontextmanager
    async def hold(self, key: object) -> AsyncIterator[None]:
        async with self._locks[key]:
            yield

    def __len__(self) -> int:
        return len(self._locks)
