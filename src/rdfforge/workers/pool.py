"""Worker pool: A fixed number of local workers sharing one job queue."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from rdfforge.workers.local import LocalWorker
from rdfforge.workers.queue import JobQueue

if TYPE_CHECKING:
    from rdfforge.pipeline.runner import PipelineRunner

logger = logging.getLogger("rdfforge.workers.pool")


class WorkerPool:
    """Bounded pool of asyncio workers.

        pool = WorkerPool(runner, size=4)
        pool.start()
        pool.submit(job.id, job.priority)
        ...
        await pool.drain(grace=30)

    A job id is dispatched to at most one worker: the queue holds it once
    and the runner claims it with a conditional update before running.
    """

    def __init__(self, runner: "PipelineRunner", size: int = 4, queue: JobQueue | None = None):
        self.runner = runner
        self.size = size
        self.queue = queue or JobQueue()
        self.workers = [LocalWorker(f"local-{i}", self.queue, runner) for i in range(size)]
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    @property
    def active_jobs(self) -> list[str]:
        return [w.current_job for w in self.workers if w.current_job]

    def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [asyncio.create_task(w.serve(), name=w.worker_id) for w in self.workers]
        logger.info(f"Worker pool started ({self.size} workers)")

    def submit(self, job_id: str, priority: int = 5) -> bool:
        queued = self.queue.put(job_id, priority)
        if queued:
            logger.debug(f"Queued job {job_id} (priority={priority}, depth={len(self.queue)})")
        return queued

    def request_cancel(self, job_id: str) -> bool:
        """Signal the worker running job_id, or drop it from the queue if not started."""
        self.queue.discard(job_id)
        return any(w.cancel(job_id) for w in self.workers)

    async def drain(self, grace: float = 30.0) -> None:
        """Stop taking jobs and wait for in-flight ones, up to `grace` seconds."""
        if not self._tasks:
            return
        self.queue.close(len(self._tasks))
        done, pending = await asyncio.wait(self._tasks, timeout=grace)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"{len(pending)} workers still busy after {grace}s; cancelled {self.active_jobs}")
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks = []
        logger.info("Worker pool stopped")

    def info(self) -> dict:
        return {
            "size": self.size,
            "queued": len(self.queue),
            "active_jobs": self.active_jobs,
            "workers": [w.info() for w in self.workers],
        }
