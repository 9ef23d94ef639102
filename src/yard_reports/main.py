"""FastAPI application factory.

Creates the FastAPI app with lifespan management, exception handlers,
and OpenAPI metadata.
"""

import asyncio
import contextlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from yard_reports.core.components import (
    build_job_queue,
    build_object_storage,
    build_report_worker,
    build_status_store,
)
from yard_reports.core.config import get_settings
from yard_reports.core.database import create_engine, create_session_factory
from yard_reports.core.logging import setup_logging
from yard_reports.services.report_worker import run_worker


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Build storage and queue on startup; run and stop the embedded worker."""
    settings = get_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir)

    storage = build_object_storage(settings)
    status_store = build_status_store(settings, storage)
    job_queue = build_job_queue(settings)
    app.state.status_store = status_store
    app.state.job_queue = job_queue

    # Embedded export worker sharing the API process's queue
    engine = None
    worker_task = None
    stop_event = asyncio.Event()
    if settings.reports_worker_embedded:
        engine = create_engine(settings.database_url, schema=settings.database_schema)
        worker = build_report_worker(settings, create_session_factory(engine), storage, status_store)
        worker_task = asyncio.create_task(
            run_worker(
                worker,
                job_queue,
                wait_seconds=settings.reports_worker_wait_seconds,
                max_receives=settings.reports_worker_max_receives,
                stop_event=stop_event,
            )
        )
        logger.info("Embedded report worker enabled")

    yield

    if worker_task is not None:
        stop_event.set()
        worker_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await worker_task

    if engine is not None:
        await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Yard Reports",
        description="Asynchronous trailer movement report exports",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Register exception handlers
    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"detail": str(exc)},
        )

    # Register middleware and routers
    from yard_reports.api.router import create_router, setup_middleware

    setup_middleware(app, settings)
    app.include_router(create_router(settings))

    return app
