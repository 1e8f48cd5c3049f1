from __future__ import annotations

import logging
import uuid
from typing import Any

import httpx

from oqta.core.config import CHAT_WEBHOOK_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "I'm sorry, I couldn't process that request."
DEFAULT_USER_EMAIL = "guest@oqta.ai"
DEFAULT_USER_NAME = "Guest User"


class ChatWebhookError(RuntimeError):
    pass


def build_envelope(
    *,
    message: str,
    chat_id: str,
    user_id: str | None,
    user_email: str | None,
    user_name: str | None,
    message_id: str | None = None,
) -> dict[str, Any]:
    return {
        "systemPrompt": message,
        "user_id": user_id or chat_id,
        "user_email": user_email or DEFAULT_USER_EMAIL,
        "user_name": user_name or DEFAULT_USER_NAME,
        "user_role": "user",
        "chat_id": chat_id,
        "message_id": message_id or str(uuid.uuid4()),
        "chatInput": message,
    }


def extract_reply(data: Any) -> str:
    """Unwrap the workflow reply from any of the shapes it has been seen to return.

    Known shapes: ``{"response": {"body": {"output": ...}}}``, ``{"response": "..."}``,
    ``{"message": "..."}``, ``{"output": "..."}`` and a list wrapping any of them.
    """
    if isinstance(data, list):
        return extract_reply(data[0]) if data else FALLBACK_REPLY
    if isinstance(data, str):
        return data.strip() or FALLBACK_REPLY
    if not isinstance(data, dict):
        return FALLBACK_REPLY

    response = data.get("response")
    if isinstance(response, dict):
        body = response.get("body")
        if isinstance(body, dict) and isinstance(body.get("output"), str) and body["output"]:
            return body["output"]
    for value in (response, data.get("message"), data.get("output"), data.get("text")):
        if isinstance(value, str) and value:
            return value
    return FALLBACK_REPLY


class ChatWebhookClient:
    def __init__(self, *, timeout: float = CHAT_WEBHOOK_TIMEOUT_SECONDS) -> None:
        self.timeout = timeout

    async def send(self, url: str, envelope: dict[str, Any]) -> str:
        if not url:
            raise ChatWebhookError("Chat webhook URL is not configured")
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=envelope)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ChatWebhookError(f"Chat webhook request failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = response.text
        return extract_reply(data)


def get_chat_webhook_client() -> ChatWebhookClient:
    return ChatWebhookClient()
