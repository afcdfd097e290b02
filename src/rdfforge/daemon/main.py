"""RDF Forge daemon: FastAPI app with the cron loop and worker pool."""

import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request

from rdfforge import __version__
from rdfforge.api.errors import register_error_handlers
from rdfforge.api.router import api_router
from rdfforge.core.config import ForgeSettings, get_settings
from rdfforge.daemon.runtime import ForgeRuntime

logger = logging.getLogger("rdfforge")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown."""
    runtime: ForgeRuntime = app.state.runtime
    await runtime.start()
    logger.info(
        f"RDF Forge ready ({runtime.settings.workers} workers, cron tick {runtime.settings.cron_tick_seconds}s)"
    )
    yield
    await runtime.stop()


def create_app(settings: ForgeSettings | None = None, runtime: ForgeRuntime | None = None) -> FastAPI:
    runtime = runtime or ForgeRuntime(settings or get_settings())

    app = FastAPI(
        title="RDF Forge",
        description="RDF pipeline job orchestration and SHACL validation daemon",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.runtime = runtime
    register_error_handlers(app)
    app.include_router(api_router)

    @app.get("/health")
    async def health(request: Request):
        runtime: ForgeRuntime = request.app.state.runtime
        return {
            "status": "ok",
            "version": __version__,
            "workers": runtime.pool.info(),
            "scheduler_jobs": runtime.scheduler.list_jobs(),
        }

    return app


def main():
    """Entry point for the `forged` command."""
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%H:%M:%S",
    )

    # Parse CLI args (simple, no dep on typer for daemon)
    args = sys.argv[1:]
    for i, arg in enumerate(args):
        if arg == "--port" and i + 1 < len(args):
            settings.port = int(args[i + 1])
        if arg == "--host" and i + 1 < len(args):
            settings.host = args[i + 1]

    logger.info(f"Starting RDF Forge daemon v{__version__} on {settings.host}:{settings.port}")
    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level)


if __name__ == "__main__":
    main()
