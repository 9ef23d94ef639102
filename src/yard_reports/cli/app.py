"""Typer CLI root application with serve command."""

import typer

from yard_reports.core.config import get_settings
from yard_reports.core.logging import setup_logging

app = typer.Typer(name="yard-reports", help="Trailer yard movement report CLI")


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all CLI commands."""
    settings = get_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir)


@app.command()
def serve(
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload for development"),
    host: str = typer.Option("0.0.0.0", "--host", help="Bind host"),  # noqa: S104
    port: int = typer.Option(8000, "--port", help="Bind port"),
) -> None:
    """Start the API server."""
    import uvicorn

    uvicorn.run(
        "yard_reports.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


def _register_subcommands() -> None:
    """Register all CLI subcommand groups."""
    from yard_reports.cli.db_cmd import db_app
    from yard_reports.cli.report_cmd import report_app
    from yard_reports.cli.worker_cmd import worker_app

    app.add_typer(db_app, name="db", help="Database migration commands")
    app.add_typer(worker_app, name="worker", help="Report export worker commands")
    app.add_typer(report_app, name="report", help="Report job commands")


_register_subcommands()
