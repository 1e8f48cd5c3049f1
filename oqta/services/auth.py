from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from oqta.core import config


class TokenError(ValueError):
    pass


def create_access_token(user_id: str, email: str, expires_minutes: Optional[int] = None) -> str:
    if not config.JWT_SECRET:
        raise RuntimeError("JWT_SECRET is not configured")

    now = datetime.now(timezone.utc)
    lifetime = expires_minutes if expires_minutes is not None else config.JWT_EXPIRE_MINUTES
    payload: Dict[str, Any] = {
        # "sub" must be a string for python-jose
        "sub": str(user_id),
        "userId": str(user_id),
        "email": email,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=lifetime)).timestamp()),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Return the JWT claims or raise TokenError when invalid or expired."""
    if not config.JWT_SECRET:
        raise TokenError("JWT_SECRET is not configured")
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except JWTError as exc:
        raise TokenError("Invalid or expired token") from exc
