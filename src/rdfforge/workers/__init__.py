"""Worker pool: fixed-size set of asyncio workers fed by a priority queue."""

from rdfforge.workers.local import LocalWorker
from rdfforge.workers.pool import WorkerPool
from rdfforge.workers.queue import JobQueue

__all__ = ["JobQueue", "LocalWorker", "WorkerPool"]
