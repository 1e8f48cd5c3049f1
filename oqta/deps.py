# oqta/deps.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request, status

from oqta.core import config
from oqta.core.request_context import set_request_context
from oqta.services.auth import TokenError, decode_access_token

logger = logging.getLogger(__name__)


def extract_token(request: Request) -> Optional[str]:
    """Cookie first (admin panel), then ``Authorization: Bearer`` (API clients)."""
    token = request.cookies.get(config.AUTH_COOKIE_NAME)
    if token:
        return token

    authorization = request.headers.get("authorization") or ""
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


async def require_admin(request: Request) -> Dict[str, Any]:
    """Validate the admin JWT without touching the database.

    Returns the token claims (``userId``, ``email``).
    """
    token = extract_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access denied. No token provided.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = decode_access_token(token)
    except TokenError:
        logger.warning("Access denied (invalid_token): endpoint=%s %s", request.method, request.url.path)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid token.")

    user_id = payload.get("userId") or payload.get("sub")
    request.state.user = payload
    if user_id:
        set_request_context(user_id=str(user_id))
    return payload
