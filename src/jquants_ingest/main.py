"""Application entry point for the J-Quants ingestion service."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from jquants_ingest import __version__
from jquants_ingest.api.cron import router as cron_router
from jquants_ingest.api.health import router as health_router
from jquants_ingest.bootstrap import build_services
from jquants_ingest.config import get_settings
from jquants_ingest.database import close_database, initialize_database
from jquants_ingest.services.heartbeat import HeartbeatService
from jquants_ingest.services.job_scheduling import register_cron_jobs, set_job_runner
from jquants_ingest.services.jquants_errors import JQuantsConfigurationError
from jquants_ingest.services.scheduler import SchedulerService
from jquants_ingest.utils.logging import (
    add_request_logging_middleware,
    setup_logging,
)

__all__ = ["app", "create_app", "main"]

_lifecycle_logger = logging.getLogger("jquants_ingest.lifecycle")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    await initialize_database()

    app.state.heartbeat_service = HeartbeatService()
    scheduler_service = SchedulerService.from_settings(settings)
    app.state.scheduler_service = scheduler_service

    services = None
    try:
        services = build_services(settings)
    except JQuantsConfigurationError:
        _lifecycle_logger.exception("job_services_unavailable")

    if services is not None:
        app.state.job_runner = services.runner
        set_job_runner(services.runner)
        recovery = await services.recovery.handle_startup_recovery()
        _lifecycle_logger.info(
            "startup_recovery_summary",
            extra={
                "stale_runs_marked": recovery.stale_runs_marked,
                "expired_locks_removed": recovery.expired_locks_removed,
            },
        )
        register_cron_jobs(scheduler_service, settings)
        await scheduler_service.start()

    try:
        yield
    finally:
        await scheduler_service.shutdown()
        set_job_runner(None)
        if services is not None:
            await services.aclose()
        await close_database()
        _lifecycle_logger.info("shutdown_complete")


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings)

    app = FastAPI(title="J-Quants Ingest", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    add_request_logging_middleware(app)
    app.include_router(cron_router)
    app.include_router(health_router)

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "jquants_ingest.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        reload=False,
    )
