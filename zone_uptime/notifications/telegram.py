from __future__ import annotations

import html

import httpx

from zone_uptime.context import AlertStatus
from zone_uptime.db.models import Monitor

TELEGRAM_API_URL = "https://api.telegram.org"
SEND_TIMEOUT_S = 15.0


def format_telegram_message(monitor: Monitor, status: AlertStatus, error: str | None) -> str:
    name = html.escape(monitor.name)
    url = html.escape(monitor.url)
    if status == "down":
        detail = html.escape(error or "Unknown")
        return f"\U0001f534 <b>DOWN</b>: {name}\n{url}\nError: {detail}"
    return f"\U0001f7e2 <b>RECOVERED</b>: {name}\n{url}"


class TelegramNotifier:
    """Send alerts to a Telegram chat through the Bot API."""

    name = "telegram"

    def __init__(
        self, bot_token: str, chat_id: str, client: httpx.AsyncClient | None = None
    ) -> None:
        self.bot_token = bot_token
        self.chat_id = chat_id
        self._client = client

    @classmethod
    def from_config(
        cls, value: str, client: httpx.AsyncClient | None = None
    ) -> TelegramNotifier | None:
        """Build from a ``"<bot_token>|<chat_id>"`` string, or None if malformed."""
        parts = value.split("|") if value else []
        if len(parts) != 2 or not all(part.strip() for part in parts):
            return None
        bot_token, chat_id = (part.strip() for part in parts)
        return cls(bot_token, chat_id, client=client)

    async def send(self, monitor: Monitor, status: AlertStatus, error: str | None = None) -> None:
        url = f"{TELEGRAM_API_URL}/bot{self.bot_token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": format_telegram_message(monitor, status, error),
            "parse_mode": "HTML",
        }
        if self._client is not None:
            response = await self._client.post(url, json=payload, timeout=SEND_TIMEOUT_S)
        else:
            async with httpx.AsyncClient(timeout=SEND_TIMEOUT_S) as client:
                response = await client.post(url, json=payload)
        response.raise_for_status()
