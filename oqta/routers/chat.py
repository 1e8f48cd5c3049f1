from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from oqta.core import config
from oqta.core.database import get_db, utcnow
from oqta.integrations.chat_webhook import ChatWebhookClient, ChatWebhookError, build_envelope, get_chat_webhook_client
from oqta.models.chat_session import ChatSession
from oqta.schemas.common import CamelModel
from oqta.services.settings import get_setting_value

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])


class ChatMessagePayload(CamelModel):
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    user_name: Optional[str] = None
    message: Optional[str] = None


def _touch_session(db: Session, payload: ChatMessagePayload) -> ChatSession:
    session = db.query(ChatSession).filter(ChatSession.id == payload.session_id).first()
    now = utcnow()
    if session is None:
        session = ChatSession(
            id=payload.session_id,
            user_id=payload.user_id,
            user_email=payload.user_email,
            user_name=payload.user_name,
            started_at=now,
            last_message_at=now,
        )
        db.add(session)
        logger.info("chat session created session_id=%s", payload.session_id)
    else:
        session.last_message_at = now
    db.commit()
    db.refresh(session)
    return session


def _webhook_url(db: Session) -> str:
    return (get_setting_value(db, "n8n_url") or "").strip() or config.CHAT_WEBHOOK_URL


@router.post("/message")
async def post_message(
    payload: ChatMessagePayload,
    db: Session = Depends(get_db),
    webhook: ChatWebhookClient = Depends(get_chat_webhook_client),
):
    if not payload.session_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="sessionId is required")

    session = _touch_session(db, payload)
    body = {
        "success": True,
        "session": {
            "id": session.id,
            "userId": session.user_id,
            "userEmail": session.user_email,
            "userName": session.user_name,
            "startedAt": session.started_at.isoformat(),
            "lastMessageAt": session.last_message_at.isoformat(),
        },
    }

    message = (payload.message or "").strip()
    if not message:
        return body

    envelope = build_envelope(
        message=message,
        chat_id=session.id,
        user_id=payload.user_id,
        user_email=payload.user_email,
        user_name=payload.user_name,
    )
    try:
        body["response"] = await webhook.send(_webhook_url(db), envelope)
    except ChatWebhookError:
        logger.exception("chat webhook failed session_id=%s", session.id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to get AI response")
    return body
