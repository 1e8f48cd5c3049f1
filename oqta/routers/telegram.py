from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from fastapi import APIRouter, Body, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from oqta.ai.openai_provider import get_summary_provider
from oqta.core.database import get_db
from oqta.deps import require_admin
from oqta.integrations.telegram import TelegramClient, TelegramNotConfiguredError, get_telegram_client
from oqta.schemas.common import CamelModel
from oqta.services.telegram_relay import handle_update

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/telegram", tags=["telegram"])


class SetWebhookPayload(CamelModel):
    webhook_url: Optional[str] = None


def _require_configured(telegram: TelegramClient) -> TelegramClient:
    if not telegram.configured:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(TelegramNotConfiguredError()),
        )
    return telegram


@router.post("/webhook")
async def telegram_webhook(
    update: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    telegram: TelegramClient = Depends(get_telegram_client),
    provider=Depends(get_summary_provider),
):
    _require_configured(telegram)
    result = await handle_update(db, update, telegram=telegram, provider=provider)
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.post("/set-webhook")
async def set_webhook(
    payload: SetWebhookPayload,
    _user=Depends(require_admin),
    telegram: TelegramClient = Depends(get_telegram_client),
):
    if not payload.webhook_url:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="webhookUrl is required")
    _require_configured(telegram)

    try:
        data = await telegram.set_webhook(payload.webhook_url)
    except (httpx.HTTPError, ValueError):
        logger.exception("[TELEGRAM] setWebhook failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to set webhook")

    if not data.get("ok"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=data.get("description") or "Failed to set webhook",
        )
    return {
        "success": True,
        "message": "Webhook set successfully",
        "webhookUrl": payload.webhook_url,
        "result": data.get("result"),
    }


@router.get("/webhook-info")
async def webhook_info(
    _user=Depends(require_admin),
    telegram: TelegramClient = Depends(get_telegram_client),
):
    _require_configured(telegram)
    try:
        data = await telegram.get_webhook_info()
    except (httpx.HTTPError, ValueError):
        logger.exception("[TELEGRAM] getWebhookInfo failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to get webhook info")
    return {"success": True, "info": data.get("result")}
