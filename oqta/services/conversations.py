from __future__ import annotations

import json
import logging
import math
from typing import Any

from sqlalchemy import distinct, func
from sqlalchemy.orm import Session

from oqta.models.chat_history import ChatHistory
from oqta.models.chat_session import ChatSession
from oqta.models.conversation_summary import ConversationSummary
from oqta.models.customer import Customer
from oqta.models.customer_session import CustomerSession

logger = logging.getLogger(__name__)


def parse_message_payload(raw: Any) -> dict[str, Any]:
    """The workflow engine stores the payload as JSON, sometimes double-encoded."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return {"type": "unknown", "content": raw}
    if not isinstance(raw, dict):
        return {"type": "unknown", "content": "" if raw is None else str(raw)}
    return raw


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def serialize_summary(summary: ConversationSummary | None) -> dict[str, Any] | None:
    if summary is None:
        return None
    return {
        "customerName": summary.customer_name,
        "phoneNumber": summary.phone_number,
        "summary": summary.summary,
        "nextAction": summary.next_action,
        "createdAt": _iso(summary.created_at),
    }


def serialize_message(row: ChatHistory) -> dict[str, Any]:
    payload = parse_message_payload(row.message)
    return {
        "id": row.id,
        "type": payload.get("type"),
        "content": payload.get("content", ""),
        "createdAt": _iso(row.created_at),
        "toolCalls": payload.get("tool_calls") or [],
        "additionalKwargs": payload.get("additional_kwargs") or {},
        "responseMetadata": payload.get("response_metadata") or {},
        "invalidToolCalls": payload.get("invalid_tool_calls") or [],
    }


def load_session_messages(db: Session, session_id: str) -> list[ChatHistory]:
    return (
        db.query(ChatHistory)
        .filter(ChatHistory.session_id == session_id)
        .order_by(ChatHistory.created_at.asc(), ChatHistory.id.asc())
        .all()
    )


def _session_aggregates(db: Session):
    return (
        db.query(
            ChatHistory.session_id.label("session_id"),
            func.count(ChatHistory.id).label("message_count"),
            func.min(ChatHistory.created_at).label("first_message_at"),
            func.max(ChatHistory.created_at).label("last_message_at"),
        )
        .group_by(ChatHistory.session_id)
        .subquery()
    )


def _derived_sessions_query(db: Session):
    aggregates = _session_aggregates(db)
    return db.query(
        aggregates.c.session_id,
        aggregates.c.message_count,
        aggregates.c.first_message_at,
        aggregates.c.last_message_at,
        ChatSession.user_id,
        ChatSession.user_email,
        ChatSession.user_name,
        ChatSession.started_at,
    ).outerjoin(ChatSession, ChatSession.id == aggregates.c.session_id).order_by(
        aggregates.c.last_message_at.desc(),
        aggregates.c.session_id.desc(),
    )


def _summaries_by_session(db: Session, session_ids: list[str]) -> dict[str, ConversationSummary]:
    if not session_ids:
        return {}
    rows = db.query(ConversationSummary).filter(ConversationSummary.session_id.in_(session_ids)).all()
    return {row.session_id: row for row in rows}


def _customers_by_session(db: Session, session_ids: list[str]) -> dict[str, Customer]:
    if not session_ids:
        return {}
    rows = (
        db.query(CustomerSession.session_id, Customer)
        .join(Customer, Customer.id == CustomerSession.customer_id)
        .filter(CustomerSession.session_id.in_(session_ids))
        .order_by(CustomerSession.linked_at.desc())
        .all()
    )
    linked: dict[str, Customer] = {}
    for session_id, customer in rows:
        # most recent link wins
        linked.setdefault(session_id, customer)
    return linked


def _serialize_customer_ref(customer: Customer | None) -> dict[str, Any] | None:
    if customer is None:
        return None
    return {
        "id": customer.id,
        "name": customer.name,
        "email": customer.email,
        "phone": customer.phone,
        "company": customer.company,
    }


def _serialize_session_row(row, summary, customer) -> dict[str, Any]:
    return {
        "id": row.session_id,
        "userId": row.user_id,
        "userEmail": row.user_email,
        "userName": row.user_name,
        "startedAt": _iso(row.started_at or row.first_message_at),
        "lastMessageAt": _iso(row.last_message_at),
        "messageCount": int(row.message_count or 0),
        "summary": serialize_summary(summary),
        "customer": _serialize_customer_ref(customer),
    }


def list_sessions(db: Session, *, page: int, limit: int) -> dict[str, Any]:
    """Most recently active sessions, derived from the message log."""
    total = int(db.query(func.count(distinct(ChatHistory.session_id))).scalar() or 0)
    rows = _derived_sessions_query(db).offset((page - 1) * limit).limit(limit).all()

    session_ids = [row.session_id for row in rows]
    summaries = _summaries_by_session(db, session_ids)
    customers = _customers_by_session(db, session_ids)

    return {
        "sessions": [
            _serialize_session_row(row, summaries.get(row.session_id), customers.get(row.session_id))
            for row in rows
        ],
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }


def get_session_detail(db: Session, session_id: str) -> dict[str, Any] | None:
    messages = load_session_messages(db, session_id)
    session = db.query(ChatSession).filter(ChatSession.id == session_id).first()
    if not messages and session is None:
        return None

    started_at = session.started_at if session else messages[0].created_at
    last_message_at = messages[-1].created_at if messages else session.last_message_at
    return {
        "session": {
            "id": session_id,
            "userId": session.user_id if session else None,
            "userEmail": session.user_email if session else None,
            "userName": session.user_name if session else None,
            "startedAt": _iso(started_at),
            "lastMessageAt": _iso(last_message_at),
        },
        "messages": [serialize_message(row) for row in messages],
    }


EXPORT_COLUMNS = (
    "sessionId",
    "userName",
    "userEmail",
    "startedAt",
    "lastMessageAt",
    "messageCount",
    "customerName",
    "phoneNumber",
    "summary",
    "nextAction",
)


def export_rows(db: Session) -> list[dict[str, Any]]:
    rows = _derived_sessions_query(db).all()
    summaries = _summaries_by_session(db, [row.session_id for row in rows])
    exported = []
    for row in rows:
        summary = summaries.get(row.session_id)
        exported.append(
            {
                "sessionId": row.session_id,
                "userName": row.user_name,
                "userEmail": row.user_email,
                "startedAt": _iso(row.started_at or row.first_message_at),
                "lastMessageAt": _iso(row.last_message_at),
                "messageCount": int(row.message_count or 0),
                "customerName": summary.customer_name if summary else None,
                "phoneNumber": summary.phone_number if summary else None,
                "summary": summary.summary if summary else None,
                "nextAction": summary.next_action if summary else None,
            }
        )
    logger.info("conversation export prepared rows=%s", len(exported))
    return exported
