"""Main application module for the grid-shed demand-response service.

This module wires the core components together:
- the `GridEngine` seeded from YAML, with its device registry and playbooks;
- a background scheduler running auto-restore and peak-window jobs;
- a Redis subscriber (FastStream) for external grid signals, when configured;
- the FastAPI application exposing the `/grid` REST endpoints.
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import uvicorn
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from faststream.redis import RedisBroker

from grid_shed.api.errors import register_error_handlers
from grid_shed.api.routes import router as grid_router
from grid_shed.events.engine import GridEngine
from grid_shed.events.jobs import GridJobs
from grid_shed.events.recorder import EventRecorder
from grid_shed.events.rpc import grid_router as signal_router
from grid_shed.seed.loader import load_seed
from grid_shed.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)

_engine: Optional[GridEngine] = None


def job_finished_listener(event: JobExecutionEvent) -> None:
    """Listener called when a scheduled job completes or fails.

    Args:
        event: The `JobExecutionEvent` describing the finished job.
    """
    if event.exception is not None:
        logger.error(
            "Scheduled job %s failed: %s", event.job_id, event.exception, exc_info=event.exception
        )
    else:
        logger.info("Scheduled job %s completed", event.job_id)


def build_engine(scheduler: Optional[BackgroundScheduler] = None) -> GridEngine:
    """Creates a `GridEngine` from the seed file, attached to `scheduler` if given."""
    settings, devices, playbooks = load_seed()
    jobs = GridJobs(scheduler) if scheduler is not None else None
    return GridEngine(settings, devices, playbooks, jobs=jobs, recorder=EventRecorder())


def get_engine() -> GridEngine:
    """Returns the engine of the running application, building one if needed."""
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine


def _redis_url() -> str:
    redis_password = os.getenv("REDIS_PASSWORD", "")
    redis_host = os.getenv("REDIS_HOST")
    redis_port = os.getenv("REDIS_PORT", "6379")
    return f"redis://:{redis_password}@{redis_host}:{redis_port}"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    scheduler: Optional[BackgroundScheduler] = app.state.scheduler
    if scheduler is not None and not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started")
    app.state.engine.sync_peak_windows()

    broker: Optional[RedisBroker] = None
    if os.getenv("REDIS_HOST"):
        # Redis event broker setup
        broker = RedisBroker(_redis_url())
        broker.include_router(signal_router)
        await broker.start()
        logger.info("Listening for grid signals on Redis %s", os.getenv("REDIS_HOST"))

    try:
        yield
    finally:
        if broker is not None:
            await broker.close()
        if scheduler is not None and scheduler.running:
            scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")


def create_app(
    engine: Optional[GridEngine] = None, scheduler: Optional[BackgroundScheduler] = None
) -> FastAPI:
    """Builds the FastAPI application.

    Args:
        engine: The engine to serve. When omitted, a new one is seeded and
                attached to `scheduler`, or to a fresh background scheduler.
        scheduler: The scheduler driving `engine`'s jobs, started and stopped
                   with the application.

    Returns:
        The configured FastAPI application.
    """
    global _engine

    if engine is None:
        if scheduler is None:
            scheduler = BackgroundScheduler()
        engine = build_engine(scheduler)
    if scheduler is not None:
        scheduler.add_listener(job_finished_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
    _engine = engine

    app = FastAPI(title="Grid Shed API", version="0.1.0", lifespan=lifespan)
    app.state.engine = engine
    app.state.scheduler = scheduler

    app.add_middleware(
        CORSMiddleware,
        allow_origins=os.getenv("CORS_ORIGIN", "*").split(","),
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["*"],
    )
    register_error_handlers(app)
    app.include_router(grid_router)

    @app.get("/health")
    def health() -> dict:
        return {"ok": True, "grid": app.state.engine.snapshot()}

    return app


def main() -> None:
    """Entry point serving the API with uvicorn on `HOST`:`PORT`."""
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "4000"))
    logger.info("API listening on %s:%d", host, port)
    uvicorn.run(create_app(), host=host, port=port, log_level=os.getenv("LOGLEVEL", "info").lower())


if __name__ == "__main__":
    main()
