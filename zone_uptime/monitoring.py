from __future__ import annotations

import asyncio
import logging
import socket
import ssl
import time
from dataclasses import asdict, dataclass
from datetime import datetime

import httpx

from zone_uptime.context import MonitorContext
from zone_uptime.db.models import ErrorType, Monitor, utcnow
from zone_uptime.incidents import handle_incident

logger = logging.getLogger(__name__)

PROBE_TIMEOUT_S = 15.0
USER_AGENT = "UptimeBot/1.0"
MAX_ERROR_LENGTH = 500


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one reachability probe. Failures are data, never exceptions."""

    status_code: int | None
    response_ms: int
    is_up: bool
    error: str | None = None
    error_type: ErrorType | None = None


@dataclass
class SweepSummary:
    """Counts for one pass over a set of monitors."""

    kind: str
    checked: int = 0
    up: int = 0
    down: int = 0
    failed: int = 0


def _exception_chain(exc: BaseException) -> list[BaseException]:
    chain: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__ or current.__context__
    return chain


def classify_error(exc: BaseException) -> ErrorType:
    """Map a request failure onto the normalized error taxonomy."""
    chain = _exception_chain(exc)
    if any(isinstance(e, socket.gaierror) for e in chain):
        return ErrorType.DNS
    if any(isinstance(e, ssl.SSLError) for e in chain):
        return ErrorType.TLS
    if any(isinstance(e, (httpx.TimeoutException, TimeoutError)) for e in chain):
        return ErrorType.TIMEOUT
    if isinstance(exc, httpx.ConnectError):
        message = str(exc).lower()
        if "name or service not known" in message or "nodename nor servname" in message:
            return ErrorType.DNS
        return ErrorType.CONNECT
    if isinstance(exc, httpx.HTTPError):
        return ErrorType.HTTP
    return ErrorType.UNKNOWN


def _error_message(exc: BaseException) -> str:
    return (str(exc) or type(exc).__name__)[:MAX_ERROR_LENGTH]


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


async def _fetch_status(url: str, timeout_s: float) -> int:
    # client.get reads the whole body before returning, so the connection is released.
    async with httpx.AsyncClient(
        timeout=timeout_s, follow_redirects=True, headers={"User-Agent": USER_AGENT}
    ) as client:
        response = await client.get(url)
        return response.status_code


async def probe_url(url: str, timeout_s: float = PROBE_TIMEOUT_S) -> ProbeResult:
    """GET ``url`` following redirects, with a hard deadline on the whole exchange."""
    start = time.monotonic()
    try:
        status_code = await asyncio.wait_for(_fetch_status(url, timeout_s), timeout=timeout_s)
    except TimeoutError:
        return ProbeResult(
            status_code=None,
            response_ms=_elapsed_ms(start),
            is_up=False,
            error=f"Timed out after {timeout_s:g}s",
            error_type=ErrorType.TIMEOUT,
        )
    except Exception as e:
        return ProbeResult(
            status_code=None,
            response_ms=_elapsed_ms(start),
            is_up=False,
            error=_error_message(e),
            error_type=classify_error(e),
        )

    response_ms = _elapsed_ms(start)
    if 200 <= status_code < 400:
        return ProbeResult(status_code=status_code, response_ms=response_ms, is_up=True)
    return ProbeResult(
        status_code=status_code,
        response_ms=response_ms,
        is_up=False,
        error=f"HTTP {status_code}",
        error_type=ErrorType.HTTP,
    )


async def check_monitor(ctx: MonitorContext, monitor: Monitor) -> ProbeResult:
    """Probe one monitor, store the check, then run the incident state machine."""
    result = await probe_url(monitor.url, ctx.probe_timeout_s)
    await ctx.store.insert_check(
        monitor.id,
        result.status_code,
        result.response_ms,
        result.is_up,
        result.error,
        result.error_type,
    )
    await handle_incident(ctx, monitor, result)
    return result


async def _sweep(ctx: MonitorContext, monitors: list[Monitor], kind: str) -> SweepSummary:
    summary = SweepSummary(kind=kind)
    if not monitors:
        return summary

    async def run_unit(monitor: Monitor) -> ProbeResult | None:
        try:
            return await check_monitor(ctx, monitor)
        except Exception:
            logger.exception(
                "Failed to check monitor", extra={"monitor_id": monitor.id, "url": monitor.url}
            )
            return None

    results = await asyncio.gather(*[run_unit(m) for m in monitors])

    for result in results:
        if result is None:
            summary.failed += 1
            continue
        summary.checked += 1
        if result.is_up:
            summary.up += 1
        else:
            summary.down += 1

    logger.info("Sweep finished", extra=asdict(summary))
    return summary


async def run_checks(ctx: MonitorContext) -> SweepSummary:
    """Full sweep over every active, non-deleted monitor."""
    monitors = await ctx.store.get_active_monitors()
    return await _sweep(ctx, monitors, "full")


async def recheck_down(ctx: MonitorContext) -> SweepSummary:
    """Re-poll only the monitors whose latest check failed."""
    monitors = await ctx.store.get_down_monitors()
    return await _sweep(ctx, monitors, "down")


async def run_scheduled_tick(ctx: MonitorContext, now: datetime | None = None) -> SweepSummary:
    """Minute trigger: full sweep on the configured minute boundary, down-only otherwise."""
    now = now or utcnow()
    if now.minute % ctx.full_sweep_every_minutes == 0:
        return await run_checks(ctx)
    return await recheck_down(ctx)


async def worker_loop(ctx: MonitorContext, interval_s: int = 60) -> None:
    while True:
        try:
            await run_scheduled_tick(ctx)
        except Exception:
            logger.exception("Scheduled tick failed")
        await asyncio.sleep(interval_s - (time.time() % interval_s))
