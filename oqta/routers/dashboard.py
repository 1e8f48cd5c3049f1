from __future__ import annotations

from datetime import datetime, time

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from oqta.core import config
from oqta.core.database import get_db, utcnow
from oqta.deps import require_admin
from oqta.models.chat_history import ChatHistory
from oqta.models.chat_session import ChatSession
from oqta.models.invoice import Invoice

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


def _sum_amount(db: Session, *filters) -> float:
    value = db.query(func.coalesce(func.sum(Invoice.amount), 0)).filter(*filters).scalar()
    return float(value or 0)


@router.get("/stats")
def dashboard_stats(_user=Depends(require_admin), db: Session = Depends(get_db)):
    start_of_day = datetime.combine(utcnow().date(), time.min)

    conversations_today = db.query(func.count(ChatSession.id)).filter(ChatSession.started_at >= start_of_day).scalar()
    total_messages = db.query(func.count(ChatHistory.id)).scalar() or 0
    messages_today = db.query(func.count(ChatHistory.id)).filter(ChatHistory.created_at >= start_of_day).scalar()
    deals_in_progress = db.query(func.count(Invoice.id)).filter(Invoice.status == "in_progress").scalar()

    return {
        "conversationsToday": int(conversations_today or 0),
        "messagesToday": int(messages_today or 0),
        "totalMessages": int(total_messages),
        "aiTokens": int(total_messages) * config.AI_TOKENS_PER_MESSAGE,
        "totalInvoiced": _sum_amount(db),
        "totalPaid": _sum_amount(db, Invoice.status == "paid"),
        "dealsInProgress": int(deals_in_progress or 0),
    }
