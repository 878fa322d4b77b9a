"""Zone discovery: keep auto monitors in step with the Cloudflare account.

Pages are fetched one after another until the API reports a failure or the
last declared page has been read. Every discovered zone is upserted as an
``auto`` monitor. Then, provided at least one zone was fetched, auto monitors
missing from the inventory are deactivated and those present are reactivated.
Soft-deleted monitors are never touched, even when their zone is still listed.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

import httpx

from zone_uptime.context import MonitorContext, ZoneInventory, ZonePage
from zone_uptime.db.store import UpsertOutcome

logger = logging.getLogger(__name__)

CLOUDFLARE_ZONES_URL = "https://api.cloudflare.com/client/v4/zones"
REQUEST_TIMEOUT_S = 30.0

FAILED_PAGE = ZonePage(success=False, domains=[], total_pages=0)


def parse_zone_page(data: Any) -> ZonePage:
    """Turn a Cloudflare ``/zones`` response body into a ``ZonePage``."""
    if not isinstance(data, dict) or not data.get("success"):
        return FAILED_PAGE

    domains = [
        zone["name"]
        for zone in data.get("result") or []
        if isinstance(zone, dict) and zone.get("name")
    ]
    result_info = data.get("result_info") or {}
    try:
        total_pages = int(result_info.get("total_pages") or 1)
    except (TypeError, ValueError):
        total_pages = 1
    return ZonePage(success=True, domains=domains, total_pages=total_pages)


class CloudflareZoneInventory:
    """List active zones with the Cloudflare v4 API using global API key auth."""

    def __init__(
        self,
        email: str,
        api_key: str,
        per_page: int = 50,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.email = email
        self.api_key = api_key
        self.per_page = per_page
        self._client = client

    async def _get(self, params: dict[str, Any]) -> httpx.Response:
        headers = {
            "X-Auth-Email": self.email,
            "X-Auth-Key": self.api_key,
            "Content-Type": "application/json",
        }
        if self._client is not None:
            return await self._client.get(
                CLOUDFLARE_ZONES_URL, params=params, headers=headers, timeout=REQUEST_TIMEOUT_S
            )
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT_S) as client:
            return await client.get(CLOUDFLARE_ZONES_URL, params=params, headers=headers)

    async def fetch_page(self, page: int) -> ZonePage:
        """Fetch one page. Transport errors and unreadable bodies count as a failed page."""
        params = {"per_page": self.per_page, "page": page, "status": "active"}
        try:
            response = await self._get(params)
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Zone listing request failed", extra={"page": page, "error": str(e)})
            return FAILED_PAGE
        return parse_zone_page(data)


@dataclass
class SyncSummary:
    """What one reconciliation run did."""

    pages: int = 0
    complete: bool = False
    domains: int = 0
    created: int = 0
    updated: int = 0
    skipped_deleted: int = 0
    deactivated: int = 0
    reactivated: int = 0


async def collect_domains(
    inventory: ZoneInventory,
) -> tuple[list[dict[str, str]], int, bool]:
    """Read inventory pages in order.

    Returns the ``{"name", "url"}`` pairs, the number of pages read and whether
    the listing ran to its last page without a failure.
    """
    seen: dict[str, dict[str, str]] = {}
    page = 1
    while True:
        result = await inventory.fetch_page(page)
        if not result.success:
            return list(seen.values()), page - 1, False

        for name in result.domains:
            url = f"https://{name}"
            seen.setdefault(url, {"name": name, "url": url})

        if page >= result.total_pages:
            return list(seen.values()), page, True
        page += 1


async def sync_zones(ctx: MonitorContext) -> SyncSummary:
    """Reconcile auto-discovered monitors against the zone inventory."""
    if ctx.inventory is None:
        raise RuntimeError("Zone inventory is not configured")

    domains, pages, complete = await collect_domains(ctx.inventory)
    summary = SyncSummary(pages=pages, complete=complete, domains=len(domains))
    if not complete:
        logger.warning("Zone listing stopped early", extra={"pages": pages})

    for domain in domains:
        outcome = await ctx.store.upsert_monitor(domain["url"], domain["name"])
        if outcome is UpsertOutcome.CREATED:
            summary.created += 1
        elif outcome is UpsertOutcome.UPDATED:
            summary.updated += 1
        else:
            summary.skipped_deleted += 1

    # An empty listing is treated as an outage, never as "every zone is gone".
    if domains:
        urls = [domain["url"] for domain in domains]
        summary.deactivated = await ctx.store.set_monitors_active(urls, False, exclude=True)
        summary.reactivated = await ctx.store.set_monitors_active(urls, True)

    logger.info("Zone sync finished", extra=asdict(summary))
    return summary
