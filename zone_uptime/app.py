"""FastAPI application factory and background lifecycle tasks."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager, suppress

import httpx
from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware

from zone_uptime.api import router as api_router
from zone_uptime.config import Settings, get_settings
from zone_uptime.context import MonitorContext, build_context
from zone_uptime.db.session import Database
from zone_uptime.db.store import MonitorStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialize and tear down shared app resources."""
    settings: Settings = app.state.settings
    db = Database(settings.database_url)
    await db.init()

    client = httpx.AsyncClient()
    store = MonitorStore(db)
    ctx = build_context(settings, store, client=client)
    app.state.store = store
    app.state.context = ctx

    tasks = [
        asyncio.create_task(worker_task(ctx, settings.tick_interval_s)),
        asyncio.create_task(discovery_task_loop(ctx, settings.discovery_interval_hours)),
        asyncio.create_task(
            retention_task_loop(
                store, settings.cleanup_interval_hours, settings.default_retention_days
            )
        ),
    ]

    yield

    for task in tasks:
        task.cancel()
    for task in tasks:
        with suppress(asyncio.CancelledError):
            await task
    await ctx.drain_alerts()
    await client.aclose()
    await db.close()


async def worker_task(ctx: MonitorContext, interval_s: int) -> None:
    """Run the minute-tick sweep loop."""
    from .monitoring import worker_loop

    await worker_loop(ctx, interval_s=interval_s)


async def discovery_task_loop(ctx: MonitorContext, interval_hours: int) -> None:
    """Periodically reconcile monitors against the zone inventory."""
    from .discovery import sync_zones

    if ctx.inventory is None:
        logger.info("Cloudflare credentials not set; zone discovery disabled")
        return

    while True:
        try:
            await sync_zones(ctx)
        except Exception:
            logger.exception("Zone sync failed")
        await asyncio.sleep(interval_hours * 3600)


async def retention_task_loop(store: MonitorStore, interval_hours: int, default_days: int) -> None:
    """Periodically delete old checks according to the retention setting."""
    while True:
        try:
            days = await store.get_retention_days(default_days)
            checks, incidents = await store.clean_old_checks(days)
            logger.info(
                "Retention cleanup finished",
                extra={"retention_days": days, "checks": checks, "incidents": incidents},
            )
        except Exception:
            logger.exception("Retention cleanup failed")
        await asyncio.sleep(interval_hours * 3600)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    app = FastAPI(title="Zone Uptime", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret_key,
        max_age=settings.session_max_age,
        same_site="lax",
        https_only=False,
    )

    app.include_router(api_router, prefix="/api")

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        """Return a simple health status."""
        return {"status": "ok"}

    return app
