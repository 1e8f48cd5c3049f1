from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from oqta.core import config
from oqta.core.rate_limiter import (
    AI_POLICY,
    API_POLICY,
    EXPORT_POLICY,
    TELEGRAM_POLICY,
    InMemoryRateLimiterService,
    RateLimiterService,
    RateLimitPolicy,
)

EXEMPT_PATHS = {"/api/health"}


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        *,
        rate_limiter: RateLimiterService | None = None,
        trust_proxy: bool | None = None,
    ) -> None:
        super().__init__(app)
        self._rate_limiter = rate_limiter if rate_limiter is not None else InMemoryRateLimiterService()
        self._trust_proxy = config.TRUST_PROXY if trust_proxy is None else trust_proxy

    async def dispatch(self, request: Request, call_next):
        policy = resolve_policy(request.method, request.url.path)
        if policy is None:
            return await call_next(request)

        client_id = client_ip(request, trust_proxy=self._trust_proxy)
        decision = self._rate_limiter.check(client_id=client_id, policy=policy)
        if not decision.allowed:
            return JSONResponse(
                status_code=429,
                content={"detail": policy.message},
                headers={
                    "Retry-After": str(decision.retry_after_seconds),
                    "X-RateLimit-Limit": str(decision.limit),
                    "X-RateLimit-Remaining": str(decision.remaining),
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(decision.limit)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        return response


def resolve_policy(method: str, path: str) -> RateLimitPolicy | None:
    """Each /api request counts against exactly one bucket."""
    normalized = path.rstrip("/") or "/"
    if not normalized.startswith("/api") or normalized in EXEMPT_PATHS:
        return None
    if normalized == "/api/telegram/webhook":
        return TELEGRAM_POLICY
    if method.upper() == "POST" and normalized.startswith("/api/conversations/sessions/") and normalized.endswith(
        "/summary"
    ):
        return AI_POLICY
    if normalized.endswith("/export"):
        return EXPORT_POLICY
    return API_POLICY


def client_ip(request: Request, *, trust_proxy: bool = False) -> str:
    """Socket peer, or the hop the trusted proxy appended to ``X-Forwarded-For``.

    Earlier hops are written by the caller and never identify the client.
    """
    if trust_proxy:
        hops = [hop.strip() for hop in (request.headers.get("x-forwarded-for") or "").split(",")]
        hops = [hop for hop in hops if hop]
        if hops:
            return hops[-1]
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"
