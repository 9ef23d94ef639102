"""Report worker CLI commands."""

import asyncio
import signal

import typer
from loguru import logger

worker_app = typer.Typer()


@worker_app.command("run")
def worker_run(
    once: bool = typer.Option(False, "--once", help="Handle one receive round and exit"),
    wait_seconds: int | None = typer.Option(None, "--wait", help="Long-poll wait in seconds"),
) -> None:
    """Consume report jobs from the queue and export them."""
    handled = asyncio.run(_worker_run(once, wait_seconds))
    typer.echo(f"Handled {handled} report job(s)")


async def _worker_run(once: bool, wait_seconds: int | None) -> int:
    """Async implementation of the worker loop."""
    from yard_reports.core.components import (
        build_job_queue,
        build_object_storage,
        build_report_worker,
        build_status_store,
    )
    from yard_reports.core.config import get_settings
    from yard_reports.core.database import create_engine, create_session_factory
    from yard_reports.services.report_worker import run_worker

    settings = get_settings()
    if settings.reports_queue_backend == "memory":
        logger.warning("In-memory queue selected; a standalone worker will only see its own messages")

    engine = create_engine(settings.database_url, schema=settings.database_schema)
    storage = build_object_storage(settings)
    status_store = build_status_store(settings, storage)
    worker = build_report_worker(settings, create_session_factory(engine), storage, status_store)
    queue = build_job_queue(settings)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        return await run_worker(
            worker,
            queue,
            wait_seconds=settings.reports_worker_wait_seconds if wait_seconds is None else wait_seconds,
            max_receives=settings.reports_worker_max_receives,
            stop_event=stop_event,
            once=once,
        )
    finally:
        await engine.dispose()
