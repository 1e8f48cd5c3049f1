from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from oqta.core import config
from oqta.core.database import get_db
from oqta.deps import require_admin
from oqta.services.settings import settings_map, upsert_setting, upsert_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings", tags=["settings"])


class SettingValuePayload(BaseModel):
    value: Optional[Any] = None


@router.get("")
def get_settings(_user=Depends(require_admin), db: Session = Depends(get_db)):
    return settings_map(db)


@router.get("/public")
def get_public_settings(db: Session = Depends(get_db)):
    values: Dict[str, str] = {}
    try:
        values.update(settings_map(db, config.PUBLIC_SETTING_KEYS))
    except SQLAlchemyError:
        logger.warning("Database unavailable for public settings, returning analytics only", exc_info=True)
    values["yandexMetrikaId"] = config.YANDEX_METRIKA_ID
    values["gaMeasurementId"] = config.GA_MEASUREMENT_ID
    return values


@router.put("")
def update_settings(
    payload: Dict[str, Any] = Body(...),
    _user=Depends(require_admin),
    db: Session = Depends(get_db),
):
    if not payload:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Settings are required")
    values = {str(key): "" if value is None else str(value) for key, value in payload.items()}
    updated = upsert_settings(db, values)
    return {"success": True, "updated": updated}


@router.put("/{key}")
def update_setting(
    key: str,
    payload: SettingValuePayload,
    _user=Depends(require_admin),
    db: Session = Depends(get_db),
):
    if payload.value is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Key and value are required")
    setting = upsert_setting(db, key, str(payload.value))
    return {
        "success": True,
        "setting": {
            "key": setting.key,
            "value": setting.value,
            "updatedAt": setting.updated_at.isoformat() if setting.updated_at else None,
        },
    }
