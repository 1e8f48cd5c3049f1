from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from threading import Lock
from typing import Callable

from oqta.core.config import RATE_LIMIT_AI, RATE_LIMIT_API, RATE_LIMIT_EXPORT, RATE_LIMIT_TELEGRAM


@dataclass(frozen=True)
class RateLimitPolicy:
    name: str
    limit: int
    window_seconds: int
    message: str


API_POLICY = RateLimitPolicy(
    name="api",
    limit=RATE_LIMIT_API[0],
    window_seconds=RATE_LIMIT_API[1],
    message="Too many requests from this IP, please try again later.",
)
AI_POLICY = RateLimitPolicy(
    name="ai",
    limit=RATE_LIMIT_AI[0],
    window_seconds=RATE_LIMIT_AI[1],
    message="Too many AI requests, please try again later.",
)
EXPORT_POLICY = RateLimitPolicy(
    name="export",
    limit=RATE_LIMIT_EXPORT[0],
    window_seconds=RATE_LIMIT_EXPORT[1],
    message="Too many export requests, please try again later.",
)
TELEGRAM_POLICY = RateLimitPolicy(
    name="telegram",
    limit=RATE_LIMIT_TELEGRAM[0],
    window_seconds=RATE_LIMIT_TELEGRAM[1],
    message="Too many webhook requests, please try again later.",
)


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: int


class RateLimiterService(ABC):
    @abstractmethod
    def check(self, *, client_id: str, policy: RateLimitPolicy) -> RateLimitDecision:
        """Decide whether a request from ``client_id`` fits in the policy window."""


class InMemoryRateLimiterService(RateLimiterService):
    """Sliding-window limiter kept in process memory, keyed by policy and client.

    Serverless instances each keep their own window. Idle clients are swept
    every ``sweep_interval_seconds`` so the store only holds active windows.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval_seconds: float = 60.0,
    ) -> None:
        self._store: dict[tuple[str, str], tuple[int, deque[float]]] = {}
        self._lock = Lock()
        self._clock = clock
        self._sweep_interval = sweep_interval_seconds
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._store)

    def _sweep(self, now: float) -> None:
        for key, (window_seconds, bucket) in list(self._store.items()):
            if not bucket or bucket[-1] <= now - window_seconds:
                del self._store[key]
        self._last_sweep = now

    def check(self, *, client_id: str, policy: RateLimitPolicy) -> RateLimitDecision:
        now = self._clock()
        key = (policy.name, client_id)

        with self._lock:
            if now - self._last_sweep >= self._sweep_interval:
                self._sweep(now)

            _, bucket = self._store.setdefault(key, (policy.window_seconds, deque()))
            cutoff = now - policy.window_seconds
            while bucket and bucket[0] <= cutoff:
                bucket.popleft()

            if len(bucket) >= policy.limit:
                retry_after = max(1, int(policy.window_seconds - (now - bucket[0])))
                return RateLimitDecision(
                    allowed=False,
                    limit=policy.limit,
                    remaining=0,
                    retry_after_seconds=retry_after,
                )

            bucket.append(now)
            remaining = max(0, policy.limit - len(bucket))
            return RateLimitDecision(
                allowed=True,
                limit=policy.limit,
                remaining=remaining,
                retry_after_seconds=0,
            )
