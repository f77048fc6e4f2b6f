"""
interfaces/telegram.py — Telegram Bot API client.

Handles bot verification, chat lookup and plain text delivery for
scheduled messages.
"""

import httpx
import logging
from typing import Optional

from interfaces.base import ClientInterface

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org/bot{token}"
MAX_MESSAGE_LEN = 4096


class TelegramAPIError(Exception):
    """Telegram answered with ok=false."""

    def __init__(self, method: str, description: str, error_code: Optional[int] = None):
        super().__init__(f"{method} failed: {description}")
        self.method = method
        self.description = description
        self.error_code = error_code


class TelegramClient(ClientInterface):
    """Async Telegram Bot API wrapper."""

    def __init__(self, token: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.token = token
        self.base_url = TELEGRAM_API.format(token=token)
        self.username: Optional[str] = None
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=30.0, transport=self._transport)
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _call(self, method: str, **kwargs) -> dict:
        """Make a Telegram Bot API call and return its `result`."""
        client = await self._get_client()
        url = f"{self.base_url}/{method}"
        resp = await client.post(url, json=kwargs)
        try:
            data = resp.json()
        except ValueError:
            resp.raise_for_status()
            raise
        if not data.get("ok"):
            logger.error(f"Telegram API error: {data}")
            raise TelegramAPIError(
                method,
                data.get("description", f"HTTP {resp.status_code}"),
                data.get("error_code"),
            )
        return data.get("result")

    # ── Bot info ──────────────────────────────────────────────

    async def get_me(self) -> dict:
        """Verify the token and remember the bot's username."""
        me = await self._call("getMe")
        self.username = me.get("username")
        return me

    async def get_chat(self, chat_id: str) -> dict:
        """Look up a chat. Fails if the bot has never talked to it."""
        return await self._call("getChat", chat_id=chat_id)

    # ── Messaging ─────────────────────────────────────────────

    async def send_message(self, target: str, text: str) -> None:
        """Send a plain text message. Splits into chunks if > 4096 chars."""
        chunks = [text[i : i + MAX_MESSAGE_LEN] for i in range(0, len(text), MAX_MESSAGE_LEN)] or [text]
        for chunk in chunks:
            await self._call("sendMessage", chat_id=target, text=chunk)
