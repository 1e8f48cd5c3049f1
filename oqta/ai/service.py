from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from oqta.ai.base import SummaryProvider
from oqta.models.chat_history import ChatHistory
from oqta.models.conversation_summary import ConversationSummary
from oqta.services.conversations import load_session_messages, parse_message_payload

logger = logging.getLogger(__name__)
SUMMARY_PREFIX = "[SUMMARY]"


class SessionNotFoundError(LookupError):
    def __init__(self, session_id: str) -> None:
        super().__init__("Session not found")
        self.session_id = session_id


class SummaryConfigurationError(RuntimeError):
    def __init__(self) -> None:
        super().__init__("OpenAI API key not configured")


class SummaryGenerationError(RuntimeError):
    pass


@dataclass
class SummaryOutcome:
    summary: ConversationSummary
    cached: bool


def message_role(message_type: str | None) -> str:
    return "user" if message_type == "human" else "assistant"


def build_transcript(rows: list[ChatHistory]) -> str:
    lines = []
    for row in rows:
        payload = parse_message_payload(row.message)
        lines.append(f"{message_role(payload.get('type'))}: {payload.get('content') or ''}")
    return "\n\n".join(lines)


def get_cached_summary(db: Session, session_id: str) -> ConversationSummary | None:
    return db.query(ConversationSummary).filter(ConversationSummary.session_id == session_id).first()


def generate_conversation_summary(
    db: Session,
    session_id: str,
    provider: SummaryProvider | None,
) -> SummaryOutcome:
    """Return the stored summary for a session, generating it on first request.

    Stored summaries are never refreshed. Two first-time requests racing on the
    same session both call the provider; the loser of the insert returns the
    winner's row as cached.
    """
    existing = get_cached_summary(db, session_id)
    if existing is not None:
        logger.info("%s cache hit session_id=%s", SUMMARY_PREFIX, session_id)
        return SummaryOutcome(summary=existing, cached=True)

    messages = load_session_messages(db, session_id)
    if not messages:
        raise SessionNotFoundError(session_id)

    if provider is None:
        logger.error("%s no summary provider configured", SUMMARY_PREFIX)
        raise SummaryConfigurationError()

    transcript = build_transcript(messages)
    try:
        result = provider.summarize(transcript)
    except Exception as exc:
        logger.exception("%s provider failed session_id=%s provider=%s", SUMMARY_PREFIX, session_id, provider.name)
        raise SummaryGenerationError(str(exc)) from exc

    summary = ConversationSummary(
        session_id=session_id,
        customer_name=result.customer_name,
        phone_number=result.phone_number,
        summary=result.summary,
        next_action=result.next_action,
    )
    db.add(summary)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        winner = get_cached_summary(db, session_id)
        if winner is None:
            raise
        logger.info("%s concurrent insert resolved session_id=%s", SUMMARY_PREFIX, session_id)
        return SummaryOutcome(summary=winner, cached=True)

    db.refresh(summary)
    logger.info(
        "%s generated session_id=%s messages=%s provider=%s",
        SUMMARY_PREFIX,
        session_id,
        len(messages),
        provider.name,
    )
    return SummaryOutcome(summary=summary, cached=False)
