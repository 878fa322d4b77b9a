"""Test the monitoring module."""

from __future__ import annotations

import asyncio
import socket
from datetime import datetime
from types import TracebackType

import httpx
import pytest
from conftest import add_monitor

from zone_uptime import monitoring
from zone_uptime.context import MonitorContext
from zone_uptime.db.models import ErrorType, MonitorSource
from zone_uptime.db.session import Database
from zone_uptime.db.store import MonitorStore
from zone_uptime.monitoring import ProbeResult, classify_error, probe_url


class _DummyResponse:
    def __init__(self, status_code: int) -> None:
        self.status_code = status_code


class _DummyClient:
    def __init__(self, status_code: int = 200, error: Exception | None = None, delay: float = 0):
        self._status_code = status_code
        self._error = error
        self._delay = delay
        self.requested: list[str] = []

    async def __aenter__(self) -> _DummyClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        return False

    async def get(self, url: str) -> _DummyResponse:
        self.requested.append(url)
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return _DummyResponse(self._status_code)


def _patch_client(monkeypatch: pytest.MonkeyPatch, client: _DummyClient) -> dict:
    captured: dict = {}

    def factory(**kwargs: object) -> _DummyClient:
        captured.update(kwargs)
        return client

    monkeypatch.setattr("zone_uptime.monitoring.httpx.AsyncClient", factory)
    return captured


@pytest.mark.asyncio
async def test_probe_url_marks_http_error_as_down(monkeypatch: pytest.MonkeyPatch) -> None:
    """probe_url should mark 5xx responses as down with an HTTP error string."""
    _patch_client(monkeypatch, _DummyClient(500))

    result = await probe_url("https://example.com", timeout_s=5)

    assert result.is_up is False
    assert result.status_code == 500
    assert result.response_ms >= 0
    assert result.error == "HTTP 500"
    assert result.error_type == ErrorType.HTTP


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [200, 204, 302, 399])
async def test_probe_url_marks_2xx_and_3xx_as_up(
    monkeypatch: pytest.MonkeyPatch, status_code: int
) -> None:
    """Final statuses in [200, 400) count as up."""
    _patch_client(monkeypatch, _DummyClient(status_code))

    result = await probe_url("https://example.com", timeout_s=5)

    assert result.is_up is True
    assert result.status_code == status_code
    assert result.error is None
    assert result.error_type is None


@pytest.mark.asyncio
async def test_probe_url_marks_4xx_as_down(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_client(monkeypatch, _DummyClient(404))

    result = await probe_url("https://example.com", timeout_s=5)

    assert result.is_up is False
    assert result.error == "HTTP 404"


@pytest.mark.asyncio
async def test_probe_url_follows_redirects_with_user_agent(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    captured = _patch_client(monkeypatch, _DummyClient(200))

    await probe_url("https://example.com", timeout_s=5)

    assert captured["follow_redirects"] is True
    assert captured["headers"] == {"User-Agent": "UptimeBot/1.0"}


@pytest.mark.asyncio
async def test_probe_url_returns_network_failure_as_data(monkeypatch: pytest.MonkeyPatch) -> None:
    """A request that never produced a response reports the failure message."""
    _patch_client(monkeypatch, _DummyClient(error=httpx.ConnectError("Connection refused")))

    result = await probe_url("https://example.com", timeout_s=5)

    assert result.is_up is False
    assert result.status_code is None
    assert result.response_ms is not None
    assert result.error == "Connection refused"
    assert result.error_type == ErrorType.CONNECT


@pytest.mark.asyncio
async def test_probe_url_enforces_hard_deadline(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_client(monkeypatch, _DummyClient(200, delay=5))

    result = await probe_url("https://slow.example.com", timeout_s=0.05)

    assert result.is_up is False
    assert result.status_code is None
    assert result.error_type == ErrorType.TIMEOUT
    assert result.error == "Timed out after 0.05s"


@pytest.mark.asyncio
async def test_probe_url_uses_exception_name_for_empty_messages(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _patch_client(monkeypatch, _DummyClient(error=httpx.ReadTimeout("")))

    result = await probe_url("https://example.com", timeout_s=5)

    assert result.error == "ReadTimeout"
    assert result.error_type == ErrorType.TIMEOUT


def test_classify_error_detects_dns_failures_in_cause_chain() -> None:
    error = httpx.ConnectError("[Errno -2] lookup failed")
    error.__cause__ = socket.gaierror(-2, "Name or service not known")

    assert classify_error(error) == ErrorType.DNS
    assert classify_error(ValueError("bad url")) == ErrorType.UNKNOWN


def _fake_probe(results: dict[str, ProbeResult | Exception], calls: list[str]):
    async def probe(url: str, timeout_s: float = 15.0) -> ProbeResult:
        calls.append(url)
        outcome = results[url]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return probe


UP = ProbeResult(status_code=200, response_ms=12, is_up=True)
DOWN = ProbeResult(
    status_code=500, response_ms=30, is_up=False, error="HTTP 500", error_type=ErrorType.HTTP
)


@pytest.mark.asyncio
async def test_run_checks_stores_a_check_per_active_monitor(
    monkeypatch: pytest.MonkeyPatch,
    database: Database,
    store: MonitorStore,
    ctx: MonitorContext,
) -> None:
    ok = await add_monitor(database, "https://ok.test")
    bad = await add_monitor(database, "https://bad.test")
    paused = await add_monitor(database, "https://paused.test", is_active=False)
    calls: list[str] = []
    monkeypatch.setattr(
        monitoring,
        "probe_url",
        _fake_probe({"https://ok.test": UP, "https://bad.test": DOWN}, calls),
    )

    summary = await monitoring.run_checks(ctx)

    assert sorted(calls) == ["https://bad.test", "https://ok.test"]
    assert (summary.checked, summary.up, summary.down, summary.failed) == (2, 1, 1, 0)
    [ok_check] = await store.get_last_n_checks(ok.id, 5)
    assert ok_check.is_up is True
    assert ok_check.status_code == 200
    [bad_check] = await store.get_last_n_checks(bad.id, 5)
    assert bad_check.is_up is False
    assert bad_check.error == "HTTP 500"
    assert bad_check.error_type == "http"
    assert await store.get_last_n_checks(paused.id, 5) == []


@pytest.mark.asyncio
async def test_run_checks_skips_deleted_monitors(
    monkeypatch: pytest.MonkeyPatch,
    database: Database,
    store: MonitorStore,
    ctx: MonitorContext,
) -> None:
    monitor = await add_monitor(database, "https://gone.test", source=MonitorSource.AUTO)
    await store.delete_monitor(monitor.id)
    calls: list[str] = []
    monkeypatch.setattr(monitoring, "probe_url", _fake_probe({}, calls))

    summary = await monitoring.run_checks(ctx)

    assert calls == []
    assert summary.checked == 0


@pytest.mark.asyncio
async def test_one_failing_unit_does_not_stop_the_sweep(
    monkeypatch: pytest.MonkeyPatch,
    database: Database,
    store: MonitorStore,
    ctx: MonitorContext,
) -> None:
    await add_monitor(database, "https://boom.test")
    healthy = await add_monitor(database, "https://fine.test")
    calls: list[str] = []
    monkeypatch.setattr(
        monitoring,
        "probe_url",
        _fake_probe({"https://boom.test": RuntimeError("boom"), "https://fine.test": UP}, calls),
    )

    summary = await monitoring.run_checks(ctx)

    assert summary.failed == 1
    assert summary.checked == 1
    assert len(await store.get_last_n_checks(healthy.id, 5)) == 1


@pytest.mark.asyncio
async def test_recheck_down_only_polls_monitors_whose_last_check_failed(
    monkeypatch: pytest.MonkeyPatch,
    database: Database,
    store: MonitorStore,
    ctx: MonitorContext,
) -> None:
    up = await add_monitor(database, "https://up.test")
    down = await add_monitor(database, "https://down.test")
    await add_monitor(database, "https://never-checked.test")
    await store.insert_check(up.id, 200, 100, True, None)
    await store.insert_check(down.id, None, 15000, False, "timeout", ErrorType.TIMEOUT)
    calls: list[str] = []
    monkeypatch.setattr(monitoring, "probe_url", _fake_probe({"https://down.test": UP}, calls))

    summary = await monitoring.recheck_down(ctx)

    assert calls == ["https://down.test"]
    assert summary.up == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(("minute", "expected"), [(0, "full"), (5, "full"), (7, "down")])
async def test_scheduled_tick_alternates_full_and_down_sweeps(
    monkeypatch: pytest.MonkeyPatch, ctx: MonitorContext, minute: int, expected: str
) -> None:
    monkeypatch.setattr(monitoring, "probe_url", _fake_probe({}, []))

    summary = await monitoring.run_scheduled_tick(ctx, datetime(2026, 1, 1, 12, minute))

    assert summary.kind == expected

