from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass
from typing import Any

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from oqta.ai.base import SummaryProvider
from oqta.ai.service import (
    SessionNotFoundError,
    SummaryConfigurationError,
    SummaryGenerationError,
    SummaryOutcome,
    generate_conversation_summary,
)
from oqta.integrations.telegram import TelegramClient

logger = logging.getLogger(__name__)
TELEGRAM_PREFIX = "[TELEGRAM]"

CALLBACK_PREFIX = "summary:"
INTERNAL_ERROR = "Internal server error"
_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


@dataclass
class RelayResult:
    status_code: int
    body: dict[str, Any]


def parse_callback_session_id(data: Any) -> str | None:
    """``summary:<uuid>`` or a bare uuid; None when not a uuid."""
    value = str(data).strip() if data is not None else ""
    if value.startswith(CALLBACK_PREFIX):
        value = value[len(CALLBACK_PREFIX):]
    return value if _UUID_RE.match(value) else None


def format_summary_message(outcome: SummaryOutcome) -> str:
    summary = outcome.summary
    parts = ["<b>📊 Conversation Summary</b>\n\n"]
    if summary.customer_name and summary.customer_name != "Unknown":
        parts.append(f"<b>Customer:</b> {html.escape(summary.customer_name)}\n\n")
    if summary.phone_number:
        parts.append(f"<b>Phone:</b> {html.escape(summary.phone_number)}\n\n")
    parts.append(f"<b>Summary:</b>\n{html.escape(summary.summary)}\n\n")
    if summary.next_action:
        parts.append(f"<b>Next Action:</b>\n{html.escape(summary.next_action)}\n\n")
    if outcome.cached:
        parts.append("<i>📝 Note: This is a cached summary</i>")
    return "".join(parts).rstrip()


async def handle_callback_query(
    db: Session,
    callback_query: dict[str, Any],
    *,
    telegram: TelegramClient,
    provider: SummaryProvider | None,
) -> RelayResult:
    message = callback_query.get("message") or {}
    chat_id = (message.get("chat") or {}).get("id")
    message_id = message.get("message_id")
    data = callback_query.get("data")
    logger.info("%s callback query chat_id=%s data=%s", TELEGRAM_PREFIX, chat_id, data)

    session_id = parse_callback_session_id(data)
    if session_id is None:
        logger.warning("%s invalid session id data=%s", TELEGRAM_PREFIX, data)
        await telegram.send_message(chat_id, "❌ Invalid session ID format", reply_to_message_id=message_id)
        return RelayResult(200, {"success": False, "error": "Invalid session ID"})

    try:
        outcome = await run_in_threadpool(generate_conversation_summary, db, session_id, provider)
    except (SessionNotFoundError, SummaryConfigurationError, SummaryGenerationError) as exc:
        logger.error("%s summary failed session_id=%s error=%s", TELEGRAM_PREFIX, session_id, exc)
        await telegram.send_message(
            chat_id,
            f"❌ Error generating summary: {html.escape(str(exc))}",
            reply_to_message_id=message_id,
        )
        return RelayResult(500, {"success": False, "error": str(exc)})
    except Exception:
        logger.exception("%s summary crashed session_id=%s", TELEGRAM_PREFIX, session_id)
        await telegram.send_message(
            chat_id,
            f"❌ Error generating summary: {INTERNAL_ERROR}",
            reply_to_message_id=message_id,
        )
        return RelayResult(500, {"success": False, "error": INTERNAL_ERROR})

    sent = await telegram.send_message(chat_id, format_summary_message(outcome), reply_to_message_id=message_id)
    if not sent:
        return RelayResult(500, {"success": False, "error": "Failed to send message"})

    logger.info("%s summary sent session_id=%s cached=%s", TELEGRAM_PREFIX, session_id, outcome.cached)
    return RelayResult(200, {"success": True, "sessionId": session_id})


async def handle_update(
    db: Session,
    update: dict[str, Any],
    *,
    telegram: TelegramClient,
    provider: SummaryProvider | None,
) -> RelayResult:
    if update.get("callback_query"):
        return await handle_callback_query(db, update["callback_query"], telegram=telegram, provider=provider)

    if update.get("message"):
        chat_id = ((update["message"].get("chat") or {}).get("id"))
        logger.info("%s message received chat_id=%s", TELEGRAM_PREFIX, chat_id)
        return RelayResult(200, {"success": True, "message": "Message received"})

    logger.info("%s unhandled update keys=%s", TELEGRAM_PREFIX, sorted(update))
    return RelayResult(200, {"success": True, "message": "Update received"})
