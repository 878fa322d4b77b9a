"""Query layer over the monitor database.

Every method opens its own short-lived session so concurrent sweep units never
share a transaction. "Most recent check" is always ordered by ``checked_at``
descending and then by ``id`` descending, so checks that share a timestamp
resolve in insertion order.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any
from urllib.parse import urlsplit

from sqlalchemy import case, delete, func, select, update

from zone_uptime.db.models import (
    Check,
    ErrorType,
    Incident,
    Monitor,
    MonitorSource,
    Setting,
    utcnow,
)
from zone_uptime.db.session import Database

logger = logging.getLogger(__name__)

RETENTION_DAYS_KEY = "retention_days"
MIN_RETENTION_DAYS = 1
MAX_RETENTION_DAYS = 90


class MonitorExistsError(Exception):
    """Raised when a manual monitor is created for a URL that is already tracked."""

    def __init__(self, url: str) -> None:
        super().__init__(f"Monitor already exists: {url}")
        self.url = url


class UpsertOutcome(str, Enum):
    """Result of reconciling one discovered URL."""

    CREATED = "created"
    UPDATED = "updated"
    SKIPPED_DELETED = "skipped_deleted"


@dataclass
class MonitorStats:
    """Dashboard row for one active monitor."""

    monitor: Monitor
    up_24h: int
    total_24h: int
    last_response_ms: int | None
    current_status: bool | None


def clamp_retention_days(value: int) -> int:
    """Clamp a retention period to the supported range."""
    return max(MIN_RETENTION_DAYS, min(MAX_RETENTION_DAYS, value))


def _latest_check(column: Any) -> Any:
    return (
        select(column)
        .where(Check.monitor_id == Monitor.id)
        .order_by(Check.checked_at.desc(), Check.id.desc())
        .limit(1)
        .correlate(Monitor)
        .scalar_subquery()
    )


def _live_monitors() -> Any:
    return select(Monitor).where(Monitor.is_active.is_(True), Monitor.deleted_at.is_(None))


class MonitorStore:
    """Persistence operations for monitors, checks, incidents and settings."""

    def __init__(self, database: Database) -> None:
        self.database = database
        self._locks: dict[int, asyncio.Lock] = {}

    def monitor_lock(self, monitor_id: int) -> asyncio.Lock:
        """Return the lock serializing incident decisions for one monitor."""
        lock = self._locks.get(monitor_id)
        if lock is None:
            lock = self._locks[monitor_id] = asyncio.Lock()
        return lock

    # Scheduler queries

    async def get_active_monitors(self) -> list[Monitor]:
        async with self.database.session() as session:
            result = await session.execute(_live_monitors().order_by(Monitor.name))
            return list(result.scalars().all())

    async def get_down_monitors(self) -> list[Monitor]:
        """Return live monitors whose most recent check was down."""
        latest_is_up = _latest_check(Check.is_up)
        async with self.database.session() as session:
            result = await session.execute(
                _live_monitors().where(latest_is_up.is_(False)).order_by(Monitor.name)
            )
            return list(result.scalars().all())

    async def insert_check(
        self,
        monitor_id: int,
        status_code: int | None,
        response_ms: int | None,
        is_up: bool,
        error: str | None,
        error_type: ErrorType | str | None = None,
    ) -> Check:
        check = Check(
            monitor_id=monitor_id,
            status_code=status_code,
            response_ms=response_ms,
            is_up=is_up,
            error=error,
            error_type=error_type.value if isinstance(error_type, ErrorType) else error_type,
        )
        async with self.database.session() as session:
            session.add(check)
            await session.flush()
        return check

    async def get_last_n_checks(self, monitor_id: int, n: int) -> list[Check]:
        async with self.database.session() as session:
            result = await session.execute(
                select(Check)
                .where(Check.monitor_id == monitor_id)
                .order_by(Check.checked_at.desc(), Check.id.desc())
                .limit(n)
            )
            return list(result.scalars().all())

    # Incidents

    async def get_open_incident(self, monitor_id: int) -> Incident | None:
        async with self.database.session() as session:
            result = await session.execute(
                select(Incident)
                .where(Incident.monitor_id == monitor_id, Incident.resolved_at.is_(None))
                .order_by(Incident.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def create_incident(self, monitor_id: int) -> Incident:
        """Open an incident for which a down notification is being sent."""
        incident = Incident(monitor_id=monitor_id, notified_down=True)
        async with self.database.session() as session:
            session.add(incident)
            await session.flush()
        return incident

    async def resolve_incident(self, incident_id: int, notify_up: bool) -> None:
        async with self.database.session() as session:
            await session.execute(
                update(Incident)
                .where(Incident.id == incident_id, Incident.resolved_at.is_(None))
                .values(resolved_at=utcnow(), notified_up=notify_up)
            )

    async def get_monitor_incidents(self, monitor_id: int, limit: int = 20) -> list[Incident]:
        async with self.database.session() as session:
            result = await session.execute(
                select(Incident)
                .where(Incident.monitor_id == monitor_id)
                .order_by(Incident.started_at.desc(), Incident.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    # Reconciliation

    async def upsert_monitor(self, url: str, name: str) -> UpsertOutcome:
        """Insert or refresh a discovered monitor, leaving deleted ones alone."""
        async with self.database.session() as session:
            result = await session.execute(select(Monitor).where(Monitor.url == url))
            existing = result.scalar_one_or_none()

            if existing is None:
                session.add(Monitor(url=url, name=name, source=MonitorSource.AUTO.value))
                return UpsertOutcome.CREATED

            if existing.deleted_at is not None:
                return UpsertOutcome.SKIPPED_DELETED

            existing.name = name
            existing.source = MonitorSource.AUTO.value
            existing.updated_at = utcnow()
            return UpsertOutcome.UPDATED

    async def set_monitors_active(
        self,
        urls: Iterable[str],
        active: bool,
        *,
        source: MonitorSource = MonitorSource.AUTO,
        exclude: bool = False,
    ) -> int:
        """Set ``is_active`` on non-deleted monitors of ``source``.

        With ``exclude=False`` the monitors whose url is in ``urls`` are
        updated; with ``exclude=True`` every other monitor of that source is.
        Returns the number of monitors whose flag changed.
        """
        url_list = list(urls)
        matches = Monitor.url.not_in(url_list) if exclude else Monitor.url.in_(url_list)
        async with self.database.session() as session:
            result = await session.execute(
                update(Monitor)
                .where(
                    Monitor.source == source.value,
                    Monitor.deleted_at.is_(None),
                    Monitor.is_active != active,
                    matches,
                )
                .values(is_active=active)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

    # Monitor management

    async def get_all_monitors(self) -> list[Monitor]:
        async with self.database.session() as session:
            result = await session.execute(
                select(Monitor).where(Monitor.deleted_at.is_(None)).order_by(Monitor.name)
            )
            return list(result.scalars().all())

    async def get_monitor(self, monitor_id: int, include_deleted: bool = False) -> Monitor | None:
        query = select(Monitor).where(Monitor.id == monitor_id)
        if not include_deleted:
            query = query.where(Monitor.deleted_at.is_(None))
        async with self.database.session() as session:
            result = await session.execute(query)
            return result.scalar_one_or_none()

    async def create_monitor(self, url: str, name: str | None = None) -> Monitor:
        """Add a manual monitor.

        A URL that was soft-deleted earlier is brought back as a manual monitor,
        which is the only way a deleted URL is ever tracked again.
        """
        name = name or urlsplit(url).hostname or url
        async with self.database.session() as session:
            result = await session.execute(select(Monitor).where(Monitor.url == url))
            existing = result.scalar_one_or_none()

            if existing is None:
                monitor = Monitor(url=url, name=name, source=MonitorSource.MANUAL.value)
                session.add(monitor)
                await session.flush()
                return monitor

            if existing.deleted_at is None:
                raise MonitorExistsError(url)

            existing.name = name
            existing.source = MonitorSource.MANUAL.value
            existing.is_active = True
            existing.user_paused = False
            existing.deleted_at = None
            existing.updated_at = utcnow()
            await session.flush()
            return existing

    async def update_monitor(
        self, monitor_id: int, url: str | None = None, name: str | None = None
    ) -> Monitor | None:
        async with self.database.session() as session:
            monitor = await session.get(Monitor, monitor_id)
            if monitor is None or monitor.deleted_at is not None:
                return None
            if url:
                monitor.url = url
            if name:
                monitor.name = name
            if url or name:
                monitor.updated_at = utcnow()
            await session.flush()
            return monitor

    async def delete_monitor(self, monitor_id: int) -> bool:
        """Soft-delete a monitor and drop its history."""
        async with self.database.session() as session:
            monitor = await session.get(Monitor, monitor_id)
            if monitor is None or monitor.deleted_at is not None:
                return False
            monitor.deleted_at = utcnow()
            monitor.is_active = False
            await session.execute(delete(Check).where(Check.monitor_id == monitor_id))
            await session.execute(delete(Incident).where(Incident.monitor_id == monitor_id))
        self._locks.pop(monitor_id, None)
        return True

    async def toggle_monitor(self, monitor_id: int) -> Monitor | None:
        """Pause an active monitor or resume a paused one."""
        async with self.database.session() as session:
            monitor = await session.get(Monitor, monitor_id)
            if monitor is None or monitor.deleted_at is not None:
                return None
            was_active = monitor.is_active
            monitor.is_active = not was_active
            monitor.user_paused = was_active
            monitor.updated_at = utcnow()
            await session.flush()
            return monitor

    async def get_recent_checks(self, monitor_id: int, limit: int = 288) -> list[Check]:
        return await self.get_last_n_checks(monitor_id, limit)

    async def get_monitor_stats(self) -> list[MonitorStats]:
        """Return 24h stats for live monitors, currently-down monitors first."""
        since = utcnow() - timedelta(hours=24)

        def _count_24h(*criteria: Any) -> Any:
            return (
                select(func.count(Check.id))
                .where(Check.monitor_id == Monitor.id, Check.checked_at > since, *criteria)
                .correlate(Monitor)
                .scalar_subquery()
            )

        current_status = _latest_check(Check.is_up)
        query = (
            select(
                Monitor,
                _count_24h(Check.is_up.is_(True)).label("up_24h"),
                _count_24h().label("total_24h"),
                _latest_check(Check.response_ms).label("last_response_ms"),
                current_status.label("current_status"),
            )
            .where(Monitor.is_active.is_(True), Monitor.deleted_at.is_(None))
            .order_by(case((current_status.is_(False), 0), else_=1), Monitor.name)
        )

        async with self.database.session() as session:
            result = await session.execute(query)
            return [
                MonitorStats(
                    monitor=row[0],
                    up_24h=int(row.up_24h or 0),
                    total_24h=int(row.total_24h or 0),
                    last_response_ms=row.last_response_ms,
                    current_status=None if row.current_status is None else bool(row.current_status),
                )
                for row in result.all()
            ]

    # Settings and retention

    async def get_setting(self, key: str) -> str | None:
        async with self.database.session() as session:
            setting = await session.get(Setting, key)
            return setting.value if setting else None

    async def set_setting(self, key: str, value: str) -> None:
        async with self.database.session() as session:
            await session.merge(Setting(key=key, value=value))

    async def get_retention_days(self, default: int = 7) -> int:
        raw = await self.get_setting(RETENTION_DAYS_KEY)
        try:
            days = int(raw) if raw is not None else default
        except ValueError:
            logger.warning("Ignoring invalid retention setting", extra={"value": raw})
            days = default
        return clamp_retention_days(days)

    async def clean_old_checks(self, retention_days: int) -> tuple[int, int]:
        """Delete checks and resolved incidents older than the retention window."""
        cutoff = utcnow() - timedelta(days=retention_days)
        async with self.database.session() as session:
            checks = await session.execute(delete(Check).where(Check.checked_at < cutoff))
            incidents = await session.execute(
                delete(Incident).where(
                    Incident.resolved_at.is_not(None), Incident.resolved_at < cutoff
                )
            )
            return checks.rowcount or 0, incidents.rowcount or 0
