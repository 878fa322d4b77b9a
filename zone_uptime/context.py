"""Explicit collaborator wiring shared by the scheduler, state machine and reconciler."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal, Protocol

if TYPE_CHECKING:
    import httpx

    from zone_uptime.config import Settings
    from zone_uptime.db.models import Check, ErrorType, Incident, Monitor, MonitorSource
    from zone_uptime.db.store import MonitorStore, UpsertOutcome

logger = logging.getLogger(__name__)

AlertStatus = Literal["up", "down"]


@dataclass(frozen=True)
class ZonePage:
    """One page of the external domain inventory."""

    success: bool
    domains: list[str]
    total_pages: int


class Persistence(Protocol):
    """Storage operations the monitoring core depends on."""

    def monitor_lock(self, monitor_id: int) -> asyncio.Lock: ...

    async def get_active_monitors(self) -> list[Monitor]: ...

    async def get_down_monitors(self) -> list[Monitor]: ...

    async def insert_check(
        self,
        monitor_id: int,
        status_code: int | None,
        response_ms: int | None,
        is_up: bool,
        error: str | None,
        error_type: ErrorType | str | None = None,
    ) -> Check: ...

    async def get_last_n_checks(self, monitor_id: int, n: int) -> list[Check]: ...

    async def get_open_incident(self, monitor_id: int) -> Incident | None: ...

    async def create_incident(self, monitor_id: int) -> Incident: ...

    async def resolve_incident(self, incident_id: int, notify_up: bool) -> None: ...

    async def upsert_monitor(self, url: str, name: str) -> UpsertOutcome: ...

    async def set_monitors_active(
        self,
        urls: Iterable[str],
        active: bool,
        *,
        source: MonitorSource = ...,
        exclude: bool = False,
    ) -> int: ...


class Notifier(Protocol):
    """One alert channel. ``send`` may raise; callers isolate failures."""

    name: str

    async def send(self, monitor: Monitor, status: AlertStatus, error: str | None = None) -> None: ...


class ZoneInventory(Protocol):
    """Paginated source of domain names to monitor."""

    async def fetch_page(self, page: int) -> ZonePage: ...


@dataclass
class MonitorContext:
    """Everything a sweep, an incident decision or a zone sync needs."""

    store: Persistence
    notifiers: list[Notifier] = field(default_factory=list)
    inventory: ZoneInventory | None = None
    probe_timeout_s: float = 15.0
    full_sweep_every_minutes: int = 5
    alert_tasks: set[asyncio.Task[None]] = field(default_factory=set)

    async def drain_alerts(self) -> None:
        """Wait for in-flight alert deliveries, e.g. before a one-shot command exits."""
        if self.alert_tasks:
            await asyncio.gather(*list(self.alert_tasks), return_exceptions=True)


def build_context(
    settings: Settings, store: MonitorStore, client: httpx.AsyncClient | None = None
) -> MonitorContext:
    """Wire a context from settings, enabling only the configured channels."""
    from zone_uptime.discovery import CloudflareZoneInventory
    from zone_uptime.notifications import ResendEmailNotifier, TelegramNotifier

    notifiers: list[Notifier] = []
    telegram = TelegramNotifier.from_config(settings.telegram, client=client)
    if telegram is not None:
        notifiers.append(telegram)
    if settings.resend_api_key and settings.alert_email:
        notifiers.append(
            ResendEmailNotifier(
                api_key=settings.resend_api_key,
                to=settings.alert_email,
                sender=settings.alert_email_from,
                client=client,
            )
        )
    if not notifiers:
        logger.warning("No notification channels configured; incidents will not alert")

    inventory = None
    if settings.cloudflare_email and settings.cloudflare_api_key:
        inventory = CloudflareZoneInventory(
            email=settings.cloudflare_email,
            api_key=settings.cloudflare_api_key,
            per_page=settings.cloudflare_zones_per_page,
            client=client,
        )

    return MonitorContext(
        store=store,
        notifiers=notifiers,
        inventory=inventory,
        probe_timeout_s=settings.probe_timeout_s,
        full_sweep_every_minutes=settings.full_sweep_every_minutes,
    )
