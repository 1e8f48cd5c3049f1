from __future__ import annotations

import logging
from typing import Mapping

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from oqta.models.admin_user import AdminUser
from oqta.models.setting import Setting
from oqta.services.passwords import hash_password, password_looks_hashed

logger = logging.getLogger(__name__)
BOOTSTRAP_PREFIX = "[ADMIN_BOOTSTRAP]"


def ensure_admin_users_table(engine: Engine) -> None:
    inspector = inspect(engine)
    if not inspector.has_table("admin_users"):
        raise RuntimeError("admin_users table not found. Run: alembic upgrade head")


def _resolve_password_hash(password: str) -> str:
    if password_looks_hashed(password):
        logger.info("%s password already hashed; storing as-is", BOOTSTRAP_PREFIX)
        return password
    return hash_password(password)


def upsert_admin_user(
    db: Session,
    *,
    email: str,
    password: str | None,
    reset_password: bool = False,
) -> tuple[AdminUser, bool]:
    normalized_email = (email or "").strip().lower()
    if not normalized_email:
        raise ValueError("Admin email is required.")

    existing = db.query(AdminUser).filter(AdminUser.email == normalized_email).first()
    if existing:
        if reset_password and password:
            existing.password_hash = _resolve_password_hash(password)
            db.commit()
            db.refresh(existing)
            logger.info("%s password reset email=%s", BOOTSTRAP_PREFIX, normalized_email)
        return existing, False

    if not password:
        raise ValueError("Password is required to create a new admin.")

    admin = AdminUser(email=normalized_email, password_hash=_resolve_password_hash(password))
    db.add(admin)
    db.commit()
    db.refresh(admin)
    logger.info("%s created id=%s email=%s", BOOTSTRAP_PREFIX, admin.id, admin.email)
    return admin, True


def seed_default_settings(db: Session, defaults: Mapping[str, str]) -> int:
    """Insert missing default settings; existing values are never overwritten."""
    existing_keys = {row.key for row in db.query(Setting.key).all()}
    created = 0
    for key, value in defaults.items():
        if key in existing_keys or not value:
            continue
        db.add(Setting(key=key, value=value))
        created += 1
    if created:
        db.commit()
    logger.info("%s default settings created=%s", BOOTSTRAP_PREFIX, created)
    return created
