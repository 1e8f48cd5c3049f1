from __future__ import annotations

import csv
import io
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from oqta.ai.openai_provider import get_summary_provider
from oqta.ai.service import (
    SessionNotFoundError,
    SummaryConfigurationError,
    SummaryGenerationError,
    generate_conversation_summary,
)
from oqta.core.database import get_db
from oqta.deps import require_admin
from oqta.services.conversations import EXPORT_COLUMNS, export_rows, get_session_detail, list_sessions, serialize_summary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/conversations", tags=["conversations"], dependencies=[Depends(require_admin)])


@router.get("/sessions")
def get_sessions(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return list_sessions(db, page=page, limit=limit)


@router.get("/sessions/{session_id}")
def get_session(session_id: str, db: Session = Depends(get_db)):
    detail = get_session_detail(db, session_id)
    if detail is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return detail


@router.post("/sessions/{session_id}/summary")
async def create_summary(
    session_id: str,
    db: Session = Depends(get_db),
    provider=Depends(get_summary_provider),
):
    try:
        outcome = await run_in_threadpool(generate_conversation_summary, db, session_id, provider)
    except SessionNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    except SummaryConfigurationError:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Server configuration error")
    except SummaryGenerationError:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to generate summary")

    body = serialize_summary(outcome.summary)
    body["sessionId"] = session_id
    body["cached"] = outcome.cached
    return body


@router.get("/export")
def export_conversations(
    format: str = Query(default="csv", pattern="^(csv|json)$"),
    db: Session = Depends(get_db),
):
    rows = export_rows(db)
    if format == "json":
        return JSONResponse({"sessions": rows, "total": len(rows)})

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(EXPORT_COLUMNS))
    writer.writeheader()
    writer.writerows(rows)
    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="conversations.csv"'},
    )
