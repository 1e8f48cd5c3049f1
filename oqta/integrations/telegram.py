from __future__ import annotations

import logging
from typing import Any

import httpx

from oqta.core.config import TELEGRAM_API_BASE, TELEGRAM_BOT_TOKEN

logger = logging.getLogger(__name__)
TELEGRAM_PREFIX = "[TELEGRAM]"


class TelegramNotConfiguredError(RuntimeError):
    def __init__(self) -> None:
        super().__init__("TELEGRAM_BOT_TOKEN not configured")


class TelegramClient:
    """Thin Bot API wrapper: sendMessage, setWebhook, getWebhookInfo. No retries."""

    def __init__(self, bot_token: str | None = None, *, api_base: str = TELEGRAM_API_BASE, timeout: float = 20.0):
        self.bot_token = bot_token if bot_token is not None else TELEGRAM_BOT_TOKEN
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.bot_token)

    def _url(self, method: str) -> str:
        if not self.bot_token:
            raise TelegramNotConfiguredError()
        return f"{self.api_base}/bot{self.bot_token}/{method}"

    async def send_message(
        self,
        chat_id: int | str,
        text: str,
        *,
        reply_to_message_id: int | None = None,
    ) -> bool:
        """Send an HTML message; False on any delivery failure."""
        if not self.bot_token:
            logger.error("%s TELEGRAM_BOT_TOKEN not configured", TELEGRAM_PREFIX)
            return False

        payload: dict[str, Any] = {"chat_id": chat_id, "text": text, "parse_mode": "HTML"}
        if reply_to_message_id:
            payload["reply_to_message_id"] = reply_to_message_id

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self._url("sendMessage"), json=payload)
        except httpx.HTTPError as exc:
            logger.error("%s sendMessage failed chat_id=%s error=%s", TELEGRAM_PREFIX, chat_id, exc)
            return False

        if not response.is_success:
            logger.error(
                "%s sendMessage rejected chat_id=%s status=%s body=%s",
                TELEGRAM_PREFIX,
                chat_id,
                response.status_code,
                response.text,
            )
            return False

        logger.info("%s message sent chat_id=%s", TELEGRAM_PREFIX, chat_id)
        return True

    async def set_webhook(self, webhook_url: str) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                self._url("setWebhook"),
                json={"url": webhook_url, "allowed_updates": ["message", "callback_query"]},
            )
        return response.json()

    async def get_webhook_info(self) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(self._url("getWebhookInfo"))
        return response.json()


def get_telegram_client() -> TelegramClient:
    return TelegramClient()
