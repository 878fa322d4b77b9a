"""Shared fixtures: a real SQLite database per test and in-memory collaborators."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio

from zone_uptime.context import AlertStatus, MonitorContext, ZonePage
from zone_uptime.db.models import Monitor, MonitorSource
from zone_uptime.db.session import Database
from zone_uptime.db.store import MonitorStore


class RecordingNotifier:
    def __init__(self, name: str = "recording") -> None:
        self.name = name
        self.sent: list[tuple[int, AlertStatus, str | None]] = []

    async def send(self, monitor: Monitor, status: AlertStatus, error: str | None = None) -> None:
        self.sent.append((monitor.id, status, error))


class FailingNotifier:
    name = "failing"

    def __init__(self) -> None:
        self.attempts = 0

    async def send(self, monitor: Monitor, status: AlertStatus, error: str | None = None) -> None:
        self.attempts += 1
        raise RuntimeError("channel unavailable")


class StaticInventory:
    """Serves a fixed list of pages; ``None`` marks a failed page."""

    def __init__(self, pages: list[list[str] | None]) -> None:
        self.pages = pages
        self.requested: list[int] = []

    @classmethod
    def single(cls, domains: list[str]) -> StaticInventory:
        return cls([domains])

    async def fetch_page(self, page: int) -> ZonePage:
        self.requested.append(page)
        domains = self.pages[page - 1]
        if domains is None:
            return ZonePage(success=False, domains=[], total_pages=0)
        return ZonePage(success=True, domains=domains, total_pages=len(self.pages))


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[Database, None]:
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'uptime.db'}")
    await db.init()
    yield db
    await db.close()


@pytest.fixture
def store(database: Database) -> MonitorStore:
    return MonitorStore(database)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def ctx(store: MonitorStore, notifier: RecordingNotifier) -> MonitorContext:
    return MonitorContext(store=store, notifiers=[notifier])


async def add_monitor(
    database: Database,
    url: str,
    name: str | None = None,
    source: MonitorSource = MonitorSource.MANUAL,
    is_active: bool = True,
) -> Monitor:
    monitor = Monitor(url=url, name=name or url, source=source.value, is_active=is_active)
    async with database.session() as session:
        session.add(monitor)
        await session.flush()
    return monitor
