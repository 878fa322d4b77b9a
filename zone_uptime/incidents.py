"""Per-monitor incident state machine.

A monitor is healthy while it has no open incident. A single failed check
leaves it unconfirmed; the second consecutive failure opens an incident and
sends down alerts. The first successful check afterwards resolves the incident
and sends recovery alerts, but only if down alerts went out for it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from zone_uptime.notifications import dispatch_alerts

if TYPE_CHECKING:
    from zone_uptime.context import MonitorContext
    from zone_uptime.db.models import Monitor
    from zone_uptime.monitoring import ProbeResult

logger = logging.getLogger(__name__)

# Consecutive failed checks needed before an incident is opened.
CONFIRMATION_CHECKS = 2


class Transition(str, Enum):
    """What a single check did to the monitor's incident state."""

    NONE = "none"
    OPENED = "opened"
    RESOLVED = "resolved"


@dataclass
class IncidentTransition:
    """Outcome of evaluating one check."""

    kind: Transition
    incident_id: int | None = None
    alerts: list[asyncio.Task[None]] = field(default_factory=list)


async def handle_incident(
    ctx: MonitorContext, monitor: Monitor, result: ProbeResult
) -> IncidentTransition:
    """Open or resolve the monitor's incident after its latest check was stored.

    Decisions for one monitor are serialized on its store lock, so two
    overlapping sweeps can never both open an incident. Alerts are started as
    background tasks and never awaited here.
    """
    store = ctx.store
    async with store.monitor_lock(monitor.id):
        open_incident = await store.get_open_incident(monitor.id)

        if not result.is_up:
            if open_incident is not None:
                return IncidentTransition(Transition.NONE, open_incident.id)

            recent = await store.get_last_n_checks(monitor.id, CONFIRMATION_CHECKS)
            confirmed_down = len(recent) >= CONFIRMATION_CHECKS and all(
                not check.is_up for check in recent
            )
            if not confirmed_down:
                return IncidentTransition(Transition.NONE)

            incident = await store.create_incident(monitor.id)
            logger.warning(
                "Incident opened",
                extra={"monitor_id": monitor.id, "url": monitor.url, "error": result.error},
            )
            alerts = dispatch_alerts(
                ctx.notifiers, monitor, "down", result.error, pending=ctx.alert_tasks
            )
            return IncidentTransition(Transition.OPENED, incident.id, alerts)

        if open_incident is None:
            return IncidentTransition(Transition.NONE)

        should_notify = bool(open_incident.notified_down)
        await store.resolve_incident(open_incident.id, should_notify)
        logger.info(
            "Incident resolved",
            extra={"monitor_id": monitor.id, "incident_id": open_incident.id},
        )
        alerts = []
        if should_notify:
            alerts = dispatch_alerts(ctx.notifiers, monitor, "up", None, pending=ctx.alert_tasks)
        return IncidentTransition(Transition.RESOLVED, open_incident.id, alerts)
