"""Fixed-window rate limiting behind an injected counter store.

The store is a FastAPI dependency: a single process uses the in-memory
store, several instances share counters through Redis. Tests override
``get_rate_limit_store`` with a fresh store.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from typing import Annotated, Protocol, runtime_checkable

import redis
from fastapi import Depends, HTTPException, Request, Response, status

from carecal.config import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of counting one request against a limit."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: int  # Unix timestamp when the window ends

    @property
    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }


@runtime_checkable
class RateLimitStore(Protocol):
    """Counter store used by :class:`RateLimiter`."""

    def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        """Count one request for ``key`` and report whether it is allowed."""
        ...

    def reset(self, key: str) -> None:
        """Forget the counter for ``key``."""
        ...


class InMemoryRateLimitStore:
    """Process-local store for single-instance deployments."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = Lock()
        self._windows: dict[str, tuple[int, float]] = {}

    def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            count, reset_at = self._windows.get(key, (0, 0.0))
            if now >= reset_at:
                count, reset_at = 0, now + window_seconds

            allowed = count < limit
            if allowed:
                count += 1
            self._windows[key] = (count, reset_at)

            # Drop finished windows so the map does not grow without bound
            if len(self._windows) > 10_000:
                self._windows = {k: v for k, v in self._windows.items() if v[1] > now}

        return RateLimitResult(
            allowed=allowed,
            limit=limit,
            remaining=max(0, limit - count),
            reset_at=int(reset_at),
        )

    def reset(self, key: str) -> None:
        with self._lock:
            self._windows.pop(key, None)


class RedisRateLimitStore:
    """Redis-backed store shared by every application instance."""

    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisRateLimitStore":
        return cls(redis.from_url(url, decode_responses=True, socket_connect_timeout=5))

    def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        pipe = self.client.pipeline()
        pipe.incr(key)
        pipe.ttl(key)
        count, ttl = pipe.execute()
        count = int(count)
        ttl = int(ttl)
        if ttl < 0:
            # First hit of a window, or a key left without expiry
            self.client.expire(key, window_seconds)
            ttl = window_seconds

        return RateLimitResult(
            allowed=count <= limit,
            limit=limit,
            remaining=max(0, limit - count),
            reset_at=int(time.time()) + ttl,
        )

    def reset(self, key: str) -> None:
        self.client.delete(key)


_store: RateLimitStore | None = None


def get_rate_limit_store() -> RateLimitStore:
    """Get the configured rate-limit store (created on first use)."""
    global _store
    if _store is None:
        settings = get_settings()
        if settings.redis_url:
            logger.info("Using Redis rate-limit store")
            _store = RedisRateLimitStore.from_url(settings.redis_url)
        else:
            logger.info("Using in-memory rate-limit store")
            _store = InMemoryRateLimitStore()
    return _store


def get_client_ip(request: Request) -> str:
    """Client address: first X-Forwarded-For hop, then X-Real-IP, then the peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


class RateLimiter:
    """Dependency limiting one scope of endpoints per client address.

    Example:
        login_limiter = RateLimiter("login", max_requests=5, window_seconds=900)

        @router.post("/login", dependencies=[Depends(login_limiter)])
    """

    def __init__(self, scope: str, max_requests: int, window_seconds: int):
        self.scope = scope
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    def __call__(
        self,
        request: Request,
        response: Response,
        store: Annotated[RateLimitStore, Depends(get_rate_limit_store)],
    ) -> RateLimitResult:
        key = f"ratelimit:{self.scope}:{get_client_ip(request)}"
        result = store.hit(key, self.max_requests, self.window_seconds)

        if not result.allowed:
            retry_after = max(0, result.reset_at - int(time.time()))
            logger.warning(f"Rate limit exceeded for {key}")
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests. Please try again later.",
                headers={**result.headers, "Retry-After": str(retry_after)},
            )

        response.headers.update(result.headers)
        return result
