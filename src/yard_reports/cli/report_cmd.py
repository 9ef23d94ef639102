"""Report job CLI commands."""

import asyncio
import json

import typer

report_app = typer.Typer()


@report_app.command("status")
def report_status(
    job_id: str = typer.Argument(..., help="Report job id"),
) -> None:
    """Print the status document of a report job."""
    asyncio.run(_report_status(job_id))


async def _report_status(job_id: str) -> None:
    """Async implementation of status lookup."""
    from yard_reports.core.components import build_object_storage, build_status_store
    from yard_reports.core.config import get_settings
    from yard_reports.services.report_service import get_report_status

    settings = get_settings()
    status_store = build_status_store(settings, build_object_storage(settings))

    status = await get_report_status(status_store, job_id)
    if status is None:
        typer.echo(f"Report job not found: {job_id}", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(status.to_document(), indent=2))
