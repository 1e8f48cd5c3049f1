from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from oqta.core.database import get_db
from oqta.deps import require_admin
from oqta.models.free_zone import FreeZoneIntegration
from oqta.schemas.common import CamelModel

router = APIRouter(prefix="/api/free-zones", tags=["free-zones"], dependencies=[Depends(require_admin)])

FREE_ZONE_FIELDS = ("name", "code", "api_endpoint", "api_key", "is_active", "config")


class FreeZonePayload(CamelModel):
    name: Optional[str] = None
    code: Optional[str] = None
    api_endpoint: Optional[str] = None
    api_key: Optional[str] = None
    is_active: Optional[bool] = None
    config: Optional[Dict[str, Any]] = None


def serialize_free_zone(zone: FreeZoneIntegration) -> Dict[str, Any]:
    return {
        "id": zone.id,
        "name": zone.name,
        "code": zone.code,
        "apiEndpoint": zone.api_endpoint,
        "apiKey": zone.api_key,
        "isActive": bool(zone.is_active),
        "config": zone.config or {},
        "createdAt": zone.created_at.isoformat() if zone.created_at else None,
        "updatedAt": zone.updated_at.isoformat() if zone.updated_at else None,
    }


def _get_or_404(db: Session, zone_id: str) -> FreeZoneIntegration:
    zone = db.query(FreeZoneIntegration).filter(FreeZoneIntegration.id == zone_id).first()
    if zone is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Free zone integration not found")
    return zone


def _commit_or_conflict(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Free zone code already exists")


@router.get("")
def list_free_zones(db: Session = Depends(get_db)):
    zones = db.query(FreeZoneIntegration).order_by(FreeZoneIntegration.name.asc()).all()
    return {"freeZones": [serialize_free_zone(zone) for zone in zones]}


@router.get("/{zone_id}")
def get_free_zone(zone_id: str, db: Session = Depends(get_db)):
    return serialize_free_zone(_get_or_404(db, zone_id))


@router.post("")
def create_free_zone(payload: FreeZonePayload, db: Session = Depends(get_db)):
    name = (payload.name or "").strip()
    code = (payload.code or "").strip().lower()
    if not name or not code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name and code are required")

    zone = FreeZoneIntegration(
        name=name,
        code=code,
        api_endpoint=payload.api_endpoint,
        api_key=payload.api_key,
        is_active=bool(payload.is_active),
        config=payload.config or {},
    )
    db.add(zone)
    _commit_or_conflict(db)
    db.refresh(zone)
    return serialize_free_zone(zone)


@router.put("/{zone_id}")
def update_free_zone(zone_id: str, payload: FreeZonePayload, db: Session = Depends(get_db)):
    zone = _get_or_404(db, zone_id)
    changes = payload.model_dump(include=set(FREE_ZONE_FIELDS), exclude_unset=True)
    if "code" in changes:
        changes["code"] = (changes["code"] or "").strip().lower()
    if ("name" in changes and not (changes["name"] or "").strip()) or ("code" in changes and not changes["code"]):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name and code are required")
    if "config" in changes and changes["config"] is None:
        changes["config"] = {}
    if "is_active" in changes:
        changes["is_active"] = bool(changes["is_active"])

    for field, value in changes.items():
        setattr(zone, field, value)
    _commit_or_conflict(db)
    db.refresh(zone)
    return serialize_free_zone(zone)


@router.delete("/{zone_id}")
def delete_free_zone(zone_id: str, db: Session = Depends(get_db)):
    zone = _get_or_404(db, zone_id)
    db.delete(zone)
    db.commit()
    return {"success": True}
