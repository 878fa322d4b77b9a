"""Fire-and-forget alert fan-out."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from zone_uptime.context import AlertStatus, Notifier
from zone_uptime.db.models import Monitor

logger = logging.getLogger(__name__)


async def _deliver(
    notifier: Notifier, monitor: Monitor, status: AlertStatus, error: str | None
) -> None:
    try:
        await notifier.send(monitor, status, error)
    except Exception:
        logger.exception(
            "Alert delivery failed",
            extra={
                "channel": getattr(notifier, "name", type(notifier).__name__),
                "monitor_id": monitor.id,
                "status": status,
            },
        )


def dispatch_alerts(
    notifiers: Iterable[Notifier],
    monitor: Monitor,
    status: AlertStatus,
    error: str | None = None,
    pending: set[asyncio.Task[None]] | None = None,
) -> list[asyncio.Task[None]]:
    """Start one independent delivery task per channel and return immediately.

    Failures are logged inside each task and never propagate. When ``pending``
    is given, tasks are held there until they finish.
    """
    tasks: list[asyncio.Task[None]] = []
    for notifier in notifiers:
        task = asyncio.create_task(_deliver(notifier, monitor, status, error))
        if pending is not None:
            pending.add(task)
            task.add_done_callback(pending.discard)
        tasks.append(task)
    return tasks
