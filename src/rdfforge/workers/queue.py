"""FIFO-with-priority job queue."""

from __future__ import annotations

import asyncio
import itertools


class JobQueue:
    """Higher priority first, FIFO within a priority. A job id is queued at most once."""

    def __init__(self):
        self._queue: asyncio.PriorityQueue = asyncio.PriorityQueue()
        self._seq = itertools.count()
        self._queued: set[str] = set()

    def put(self, job_id: str, priority: int = 5) -> bool:
        if job_id in self._queued:
            return False
        self._queued.add(job_id)
        self._queue.put_nowait((-priority, next(self._seq), job_id))
        return True

    def discard(self, job_id: str) -> None:
        """Forget a queued job; its entry is dropped when it reaches the head."""
        self._queued.discard(job_id)

    async def get(self) -> str | None:
        """Next job id, or None once the queue has been closed for this consumer."""
        while True:
            _, _, job_id = await self._queue.get()
            if job_id is None:
                return None
            if job_id in self._queued:
                self._queued.discard(job_id)
                return job_id

    def close(self, consumers: int) -> None:
        """Wake every consumer with a stop marker ahead of any queued job."""
        for _ in range(consumers):
            self._queue.put_nowait((float("-inf"), next(self._seq), None))

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._queued

    def __len__(self) -> int:
        return len(self._queued)
