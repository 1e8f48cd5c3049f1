# oqta/routers/auth.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from oqta.core import config
from oqta.core.database import get_db
from oqta.deps import require_admin
from oqta.models.admin_user import AdminUser
from oqta.services.admin_bootstrap import upsert_admin_user
from oqta.services.auth import create_access_token
from oqta.services.passwords import verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginPayload(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


def _set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=config.AUTH_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=config.AUTH_COOKIE_SECURE,
        samesite="lax",
        max_age=config.JWT_EXPIRE_MINUTES * 60,
        path="/",
    )


@router.post("/login")
def login(payload: LoginPayload, response: Response, db: Session = Depends(get_db)):
    email = (payload.email or "").strip().lower()
    if not email or not payload.password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email and password are required")

    if not config.ADMIN_EMAIL or not config.ADMIN_PASSWORD or not config.JWT_SECRET:
        logger.error("Required environment variables are not set: ADMIN_EMAIL, ADMIN_PASSWORD, JWT_SECRET")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Server configuration error")

    admin = db.query(AdminUser).filter(AdminUser.email == email).first()
    if admin is None:
        if email != config.ADMIN_EMAIL.strip().lower():
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
        # first login against an empty table
        admin, _ = upsert_admin_user(db, email=email, password=config.ADMIN_PASSWORD)

    if not verify_password(payload.password, admin.password_hash):
        logger.warning("Login failed email=%s", email)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    token = create_access_token(admin.id, admin.email)
    _set_auth_cookie(response, token)
    logger.info("Admin login id=%s", admin.id)
    return {"success": True, "token": token, "user": {"id": admin.id, "email": admin.email}}


@router.post("/logout")
def logout(response: Response):
    response.delete_cookie(config.AUTH_COOKIE_NAME, path="/")
    return {"success": True, "message": "Logged out successfully"}


@router.get("/verify")
def verify(user: Dict[str, Any] = Depends(require_admin)):
    return {"success": True, "user": user}
