"""Fixed-window rate limiting: global middleware and per-user generation limit."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog
from fastapi import Depends
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from pathquest.auth.dependencies import get_current_user
from pathquest.config import get_settings
from pathquest.db.models import User
from pathquest.errors import RateLimited
from pathquest.redis_client import get_optional_redis

logger = structlog.get_logger()

# Paths exempt from rate limiting
_EXEMPT_PATHS = frozenset({"/health", "/ready", "/version"})

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Try again later."


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int


class RateLimiter(ABC):
    """Counts hits per identity in fixed windows of ``window_seconds``."""

    def __init__(self, limit: int, window_seconds: int) -> None:
        self.limit = limit
        self.window_seconds = window_seconds

    @abstractmethod
    async def hit(self, identity: str) -> RateDecision:
        """Record one hit for ``identity`` and decide whether it is allowed."""

    def _decide(self, count: int, now: float) -> RateDecision:
        retry_after = self.window_seconds - int(now) % self.window_seconds
        return RateDecision(
            allowed=count <= self.limit,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            retry_after=retry_after,
        )


class InMemoryRateLimiter(RateLimiter):
    """Per-process counters. Used when Redis is not available."""

    def __init__(
        self,
        limit: int = 10,
        window_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(limit, window_seconds)
        self._clock = clock
        self._counters: dict[str, tuple[int, int]] = {}

    async def hit(self, identity: str) -> RateDecision:
        now = self._clock()
        window = int(now) // self.window_seconds
        current_window, count = self._counters.get(identity, (window, 0))
        if current_window != window:
            count = 0
        count += 1
        self._counters[identity] = (window, count)
        if len(self._counters) > 10_000:
            self._evict(window)
        return self._decide(count, now)

    def _evict(self, window: int) -> None:
        for key in [k for k, (w, _) in self._counters.items() if w != window]:
            del self._counters[key]


class RedisRateLimiter(RateLimiter):
    """Shared counters: INCR + EXPIRE on one key per identity and window."""

    def __init__(self, redis: Any, limit: int, window_seconds: int, prefix: str = "ratelimit") -> None:  # noqa: ANN401
        super().__init__(limit, window_seconds)
        self.redis = redis
        self.prefix = prefix

    async def hit(self, identity: str) -> RateDecision:
        now = time.time()
        window = int(now) // self.window_seconds
        key = f"{self.prefix}:{identity}:{window}"

        pipe = self.redis.pipeline()
        pipe.incr(key)
        pipe.expire(key, self.window_seconds + 1)
        results: list[Any] = await pipe.execute()
        return self._decide(int(results[0]), now)


async def _hit(redis: Any, fallback: InMemoryRateLimiter, prefix: str, identity: str) -> RateDecision:  # noqa: ANN401
    """Use Redis when it is up, otherwise the in-process limiter."""
    if redis is not None:
        limiter = RedisRateLimiter(redis, fallback.limit, fallback.window_seconds, prefix=prefix)
        try:
            return await limiter.hit(identity)
        except RedisError:
            logger.warning("rate_limit_redis_unavailable", prefix=prefix)
    return await fallback.hit(identity)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rate limit requests per client IP."""

    def __init__(self, app: Any, requests_per_window: int = 100, window_seconds: int = 60) -> None:  # noqa: ANN401
        super().__init__(app)
        self.requests_per_window = requests_per_window
        self.window_seconds = window_seconds
        self._memory = InMemoryRateLimiter(requests_per_window, window_seconds)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Check rate limit, return 429 if exceeded."""
        if request.url.path in _EXEMPT_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        decision = await _hit(get_optional_redis(), self._memory, "ratelimit", client_ip)

        if not decision.allowed:
            return JSONResponse(
                status_code=429,
                content={"success": False, "error": RATE_LIMIT_MESSAGE},
                headers={
                    "Retry-After": str(decision.retry_after),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Limit": str(decision.limit),
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        response.headers["X-RateLimit-Limit"] = str(decision.limit)
        return response


_generation_limiter: InMemoryRateLimiter | None = None


def get_generation_limiter() -> InMemoryRateLimiter:
    global _generation_limiter  # noqa: PLW0603
    if _generation_limiter is None:
        settings = get_settings()
        _generation_limiter = InMemoryRateLimiter(
            settings.generation_rate_limit_requests,
            settings.generation_rate_limit_window_seconds,
        )
    return _generation_limiter


def reset_generation_limiter() -> None:
    global _generation_limiter  # noqa: PLW0603
    _generation_limiter = None


async def generation_rate_limit(
    user: User = Depends(get_current_user),
    redis=Depends(get_optional_redis),
) -> User:
    """Strict per-user limit for the AI generation endpoints (FastAPI dependency)."""
    decision = await _hit(redis, get_generation_limiter(), "ratelimit:generation", str(user.id))
    if not decision.allowed:
        raise RateLimited(
            "Too many generation requests. Please slow down.",
            retry_after=decision.retry_after,
        )
    return user
