import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from uvicorn import Config, Server

from zone_uptime.app import create_app
from zone_uptime.config import Settings, get_settings
from zone_uptime.context import MonitorContext, build_context
from zone_uptime.db.session import Database
from zone_uptime.db.store import MonitorStore

app = typer.Typer(help="Zone Uptime monitor")
console = Console()

T = TypeVar("T")


def configure_logging(level: str) -> None:
    """Route all log records through a single rich handler."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def _run_migrations(settings: Settings) -> None:
    import os
    import subprocess
    import sys

    result = subprocess.run(
        [sys.executable, "-m", "alembic", "upgrade", "head"],
        env={**os.environ, "DATABASE_URL": settings.database_url},
    )
    if result.returncode != 0:
        typer.echo("Migration failed", err=True)
        raise typer.Exit(1)


def _run_once(
    settings: Settings, operation: Callable[[MonitorContext, MonitorStore], Awaitable[T]]
) -> T:
    """Run one operation against a fresh database connection and exit cleanly."""

    async def run() -> T:
        db = Database(settings.database_url)
        await db.init()
        try:
            async with httpx.AsyncClient() as client:
                store = MonitorStore(db)
                ctx = build_context(settings, store, client=client)
                try:
                    return await operation(ctx, store)
                finally:
                    await ctx.drain_alerts()
        finally:
            await db.close()

    return asyncio.run(run())


@app.command()
def serve() -> None:
    """Run migrations, start FastAPI server and background loops."""
    settings = get_settings()
    configure_logging(settings.log_level)
    _run_migrations(settings)

    fastapi_app = create_app(settings)
    config = Config(
        app=fastapi_app,
        host=settings.app_host,
        port=settings.app_port,
        log_level=settings.log_level.lower(),
        log_config=None,
    )
    server = Server(config)

    asyncio.run(server.serve())


@app.command()
def migrate() -> None:
    """Run Alembic migrations."""
    settings = get_settings()
    _run_migrations(settings)
    typer.echo("Migrations completed successfully")


@app.command()
def check_once() -> None:
    """Run a full sweep over every active monitor."""
    from .monitoring import run_checks

    settings = get_settings()
    configure_logging(settings.log_level)
    summary = _run_once(settings, lambda ctx, _store: run_checks(ctx))
    console.print(
        f"Checked {summary.checked} monitors: {summary.up} up, {summary.down} down, "
        f"{summary.failed} failed"
    )


@app.command()
def recheck_down() -> None:
    """Re-poll only monitors whose latest check failed."""
    from .monitoring import recheck_down as run_recheck

    settings = get_settings()
    configure_logging(settings.log_level)
    summary = _run_once(settings, lambda ctx, _store: run_recheck(ctx))
    console.print(f"Rechecked {summary.checked} monitors: {summary.up} recovered")


@app.command()
def sync_zones() -> None:
    """Reconcile monitors against the Cloudflare zone list."""
    from .discovery import sync_zones as run_sync

    settings = get_settings()
    configure_logging(settings.log_level)
    if not (settings.cloudflare_email and settings.cloudflare_api_key):
        typer.echo("CLOUDFLARE_EMAIL and CLOUDFLARE_API_KEY must be set", err=True)
        raise typer.Exit(1)

    summary = _run_once(settings, lambda ctx, _store: run_sync(ctx))
    console.print(
        f"{summary.domains} zones: {summary.created} created, {summary.updated} updated, "
        f"{summary.deactivated} deactivated, {summary.reactivated} reactivated"
    )


@app.command()
def cleanup() -> None:
    """Delete checks and resolved incidents past the retention period."""
    settings = get_settings()
    configure_logging(settings.log_level)

    async def run(_ctx: MonitorContext, store: MonitorStore) -> tuple[int, int, int]:
        days = await store.get_retention_days(settings.default_retention_days)
        checks, incidents = await store.clean_old_checks(days)
        return days, checks, incidents

    days, checks, incidents = _run_once(settings, run)
    console.print(f"Removed {checks} checks and {incidents} incidents older than {days} days")


if __name__ == "__main__":
    app()
