from __future__ import annotations

import logging
from typing import Iterable, Mapping

from sqlalchemy.orm import Session

from oqta.models.setting import Setting

logger = logging.getLogger(__name__)


def settings_map(db: Session, keys: Iterable[str] | None = None) -> dict[str, str]:
    query = db.query(Setting)
    if keys is not None:
        query = query.filter(Setting.key.in_(list(keys)))
    return {row.key: row.value for row in query.all()}


def get_setting_value(db: Session, key: str) -> str | None:
    row = db.query(Setting).filter(Setting.key == key).first()
    return row.value if row else None


def _stage_upsert(db: Session, key: str, value: str) -> Setting:
    row = db.query(Setting).filter(Setting.key == key).first()
    if row is None:
        row = Setting(key=key, value=value)
        db.add(row)
    else:
        row.value = value
    return row


def upsert_setting(db: Session, key: str, value: str) -> Setting:
    row = _stage_upsert(db, key, value)
    db.commit()
    db.refresh(row)
    return row


def upsert_settings(db: Session, values: Mapping[str, str]) -> int:
    """Upsert every pair in one transaction."""
    for key, value in values.items():
        _stage_upsert(db, key, value)
    db.commit()
    logger.info("settings updated keys=%s", sorted(values))
    return len(values)
