"""ForgeRuntime: the per-process composition root."""

from __future__ import annotations

import logging

from rdfforge.core.config import ForgeSettings
from rdfforge.core.database import Database
from rdfforge.core.locks import KeyedLocks
from rdfforge.daemon.scheduler import CronScheduler
from rdfforge.data.storage import FileStorage
from rdfforge.pipeline.context import StepResources
from rdfforge.pipeline.runner import PipelineRunner
from rdfforge.services.job_service import JobService
from rdfforge.services.shape_service import ShapeService
from rdfforge.services.triplestore_service import TriplestoreService
from rdfforge.triplestore.registry import TriplestoreRegistry
from rdfforge.workers.pool import WorkerPool

logger = logging.getLogger("rdfforge")


class ForgeRuntime:
    """Owns the database, registries, worker pool and cron loop of one daemon.

    Created once on start-up and handed to request handlers through
    app.state; nothing here is module-global.
    """

    def __init__(self, settings: ForgeSettings):
        self.settings = settings
        self.database = Database(settings.database_url)
        self.storage = FileStorage(settings.get_storage_dir())
        self.triplestores = TriplestoreRegistry(self.database)
        self.locks = KeyedLocks()
        self.resources = StepResources(database=self.database, storage=self.storage, triplestores=self.triplestores)
        self.runner = PipelineRunner(self.resources, settings)
        self.pool = WorkerPool(self.runner, size=settings.workers)
        self.scheduler = CronScheduler(
            self.database,
            self.pool,
            settings.cron_tick_seconds,
            settings.timezone,
            retry=(settings.retry_attempts, settings.retry_base_delay, settings.retry_max_delay),
        )
        self.started = False

    async def start(self) -> None:
        if self.started:
            return
        await self.database.create_tables()
        logger.info(f"Database initialized: {self.database.url}")

        async with self.database.session() as session:
            await ShapeService(session, self.locks).seed_templates()
            await TriplestoreService(session, self.triplestores).seed(self.settings.triplestores)
            await JobService(session, self.pool).recover(self.runner)

        self.pool.start()
        self.scheduler.start()
        self.started = True

    async def stop(self) -> None:
        if not self.started:
            return
        self.scheduler.stop()
        await self.pool.drain(self.settings.shutdown_grace_seconds)
        await self.triplestores.close()
        await self.database.dispose()
        self.started = False
        logger.info("RDF Forge daemon stopped")
