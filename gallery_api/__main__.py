"""Command line entry point: ``gallery-api`` or ``python -m gallery_api``."""
import asyncio
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import typer

from gallery_api.cluster.supervisor import Supervisor
from gallery_api.config import get_settings
from gallery_api.utils.logger import setup_logging

cli = typer.Typer(add_completion=False, help="Gallery API management commands")


class TaskName(str, Enum):
    COVERS = "covers"
    ARCHIVES = "archives"


@cli.callback(invoke_without_command=True)
def main_callback(ctx: typer.Context) -> None:
    """Start the server when no explicit command is provided."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(serve, workers=None, host=None, port=None)


@cli.command()
def serve(
    workers: Optional[int] = typer.Option(None, min=1, help="Worker processes (default: WORKERS_NUMBER or CPU count)"),
    host: Optional[str] = typer.Option(None, help="Interface to bind (default: HOST)"),
    port: Optional[int] = typer.Option(None, help="Port to bind (default: PORT)"),
) -> None:
    """Run the API behind the worker supervisor."""
    settings = get_settings()
    if host is not None:
        settings.host = host
    if port is not None:
        settings.port = port

    setup_logging()
    Supervisor(settings=settings, worker_count=workers).run()


def with_database(job: Callable[[Callable], Awaitable[Any]]) -> Any:
    """Run job(session_factory) against an initialised database, then close it."""
    from gallery_api.database import close_db, get_db_context, init_db

    async def _run() -> Any:
        get_settings().ensure_static_dirs()
        await init_db()
        try:
            return await job(get_db_context)
        finally:
            await close_db()

    return asyncio.run(_run())


@cli.command("run-task")
def run_task(name: TaskName = typer.Argument(..., help="Task to run once")) -> None:
    """Run a scheduled task immediately, outside of its schedule."""
    from gallery_api.tasks.archives_updater import ArchivesUpdater
    from gallery_api.tasks.covers_updater import CoversUpdater

    setup_logging()
    settings = get_settings()
    task_class = CoversUpdater if name is TaskName.COVERS else ArchivesUpdater

    if not with_database(lambda session_factory: task_class(session_factory, settings).run()):
        raise typer.Exit(code=1)


@cli.command("import-gallery")
def import_gallery(
    source: Path = typer.Argument(
        ..., exists=True, file_okay=False, dir_okay=True, help="Directory holding one sub-directory per album"
    ),
) -> None:
    """Copy images from a directory tree into the gallery and register them."""
    from gallery_api.services.maintenance import import_gallery as run_import

    setup_logging()
    report = with_database(lambda session_factory: run_import(source, session_factory))
    typer.echo(f"{report.imported} imported, {report.attached} attached to albums, {report.skipped} skipped")


@cli.command("refresh-metadata")
def refresh_metadata() -> None:
    """Probe every stored image again and update its type and dimensions."""
    from gallery_api.services.maintenance import refresh_metadata as run_refresh

    setup_logging()
    report = with_database(run_refresh)
    typer.echo(f"{report.updated} updated, {report.missing} unreadable")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
