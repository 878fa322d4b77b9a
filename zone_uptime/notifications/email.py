"""Email alerts delivered through the Resend HTTP API."""

from __future__ import annotations

import html

import httpx

from zone_uptime.context import AlertStatus
from zone_uptime.db.models import Monitor, utcnow

RESEND_API_URL = "https://api.resend.com/emails"
SEND_TIMEOUT_S = 15.0


def build_subject(monitor: Monitor, status: AlertStatus) -> str:
    if status == "down":
        return f"[DOWN] {monitor.name} is unreachable"
    return f"[RECOVERED] {monitor.name} is back online"


def build_html_body(monitor: Monitor, status: AlertStatus, error: str | None) -> str:
    """Render the alert body; the error line is only present when there is one."""
    lines = [
        f"<h2>{html.escape(build_subject(monitor, status))}</h2>",
        f"<p><strong>URL:</strong> {html.escape(monitor.url)}</p>",
    ]
    if error:
        lines.append(f"<p><strong>Error:</strong> {html.escape(error)}</p>")
    lines.append(f"<p><strong>Time:</strong> {utcnow().isoformat()}Z</p>")
    return "\n".join(lines)


class ResendEmailNotifier:
    """Send alerts to a single mailbox via Resend."""

    name = "email"

    def __init__(
        self,
        api_key: str,
        to: str,
        sender: str,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.to = to
        self.sender = sender
        self._client = client

    async def send(self, monitor: Monitor, status: AlertStatus, error: str | None = None) -> None:
        payload = {
            "from": self.sender,
            "to": [self.to],
            "subject": build_subject(monitor, status),
            "html": build_html_body(monitor, status, error),
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if self._client is not None:
            response = await self._client.post(
                RESEND_API_URL, json=payload, headers=headers, timeout=SEND_TIMEOUT_S
            )
        else:
            async with httpx.AsyncClient(timeout=SEND_TIMEOUT_S) as client:
                response = await client.post(RESEND_API_URL, json=payload, headers=headers)
        response.raise_for_status()
