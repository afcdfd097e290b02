"""Local worker: pulls job ids from the queue and runs them in the daemon's event loop."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from rdfforge.core.errors import ForgeError
from rdfforge.workers.queue import JobQueue

if TYPE_CHECKING:
    from rdfforge.pipeline.runner import PipelineRunner

logger = logging.getLogger("rdfforge.workers.local")


class LocalWorker:
    """Runs one job at a time; the pool's size bounds overall concurrency."""

    def __init__(self, worker_id: str, queue: JobQueue, runner: "PipelineRunner"):
        self.worker_id = worker_id
        self.queue = queue
        self.runner = runner
        self.current_job: str | None = None
        self.cancel_event: asyncio.Event | None = None
        self.jobs_run = 0

    @property
    def status(self) -> str:
        return "busy" if self.current_job else "idle"

    async def serve(self) -> None:
        """Process jobs until the queue hands out a stop marker."""
        logger.info(f"[{self.worker_id}] started")
        while True:
            job_id = await self.queue.get()
            if job_id is None:
                break
            await self.execute(job_id)
        logger.info(f"[{self.worker_id}] stopped")

    async def execute(self, job_id: str) -> None:
        self.current_job = job_id
        self.cancel_event = asyncio.Event()
        try:
            logger.info(f"[{self.worker_id}] Executing job {job_id}")
            job = await self.runner.run(job_id, self.cancel_event)
            if job is not None:
                logger.info(f"[{self.worker_id}] Finished job {job_id}: {job.status}")
        except ForgeError as e:
            # Bookkeeping failed outside any step (e.g. the database went away mid-run)
            logger.error(f"[{self.worker_id}] Job {job_id} aborted: {e.message}")
            await self._abort(job_id, e)
        except Exception as e:
            logger.exception(f"[{self.worker_id}] Job {job_id} crashed")
            await self._abort(job_id, ForgeError(f"{type(e).__name__}: {e}"))
        finally:
            self.jobs_run += 1
            self.current_job = None
            self.cancel_event = None

    async def _abort(self, job_id: str, error: ForgeError) -> None:
        try:
            await self.runner.abort(job_id, error)
        except ForgeError as e:
            logger.error(f"[{self.worker_id}] Could not mark job {job_id} failed: {e.message}")

    def cancel(self, job_id: str) -> bool:
        """Ask the running job to stop at its next step boundary."""
        if self.current_job == job_id and self.cancel_event is not None:
            self.cancel_event.set()
            return True
        return False

    def info(self) -> dict:
        return {
            "worker_id": self.worker_id,
            "type": "local",
            "status": self.status,
            "current_job": self.current_job,
            "jobs_run": self.jobs_run,
        }
