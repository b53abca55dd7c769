"""Rate limiting — fixed window per client address.

Learn: Each (namespace, client address) pair gets a counter and a reset
deadline. The first hit opens a window of `window_seconds`; further hits
inside it increment the counter and anything past `max_requests` is
rejected with 429 + Retry-After. Once the deadline passes the next hit
silently starts a fresh window at 1.

Counter state lives behind a small store interface:
- MemoryCounterStore: per-process dict guarded by a lock, with an
  injectable clock and a sweep() that drops expired windows
- RedisCounterStore: INCR + EXPIRE, for deployments running several workers

The limiter is a no-op in development and test environments.
"""

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import redis.asyncio as aioredis
import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from testcraft.errors import RateLimitError

logger = structlog.get_logger()


class CounterStore(Protocol):
    async def hit(self, key: str, window_seconds: int) -> tuple[int, float]:
        """Count one request for `key`. Returns (count, seconds until reset)."""
        ...

    async def sweep(self) -> int:
        """Drop expired windows. Returns how many were removed."""
        ...


@dataclass
class _Window:
    count: int
    reset_at: float


class MemoryCounterStore:
    """In-process counters. Safe to share between threads and tasks."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, _Window] = {}

    async def hit(self, key: str, window_seconds: int) -> tuple[int, float]:
        now = self._clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None or now > window.reset_at:
                window = _Window(count=1, reset_at=now + window_seconds)
                self._windows[key] = window
            else:
                window.count += 1
            return window.count, window.reset_at - now

    async def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, w in self._windows.items() if now > w.reset_at]
            for key in expired:
                del self._windows[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)


class RedisCounterStore:
    """Shared counters in Redis. Keys expire on their own, so sweep is a no-op."""

    def __init__(self, redis: aioredis.Redis, prefix: str = "testcraft:rl"):
        self.redis = redis
        self.prefix = prefix

    async def hit(self, key: str, window_seconds: int) -> tuple[int, float]:
        redis_key = f"{self.prefix}:{key}"
        count = await self.redis.incr(redis_key)
        if count == 1:
            await self.redis.expire(redis_key, window_seconds)
        ttl = await self.redis.ttl(redis_key)
        if ttl < 0:
            # Key survived without a TTL; re-arm it.
            await self.redis.expire(redis_key, window_seconds)
            ttl = window_seconds
        return int(count), float(ttl)

    async def sweep(self) -> int:
        return 0

    async def close(self) -> None:
        await self.redis.aclose()


class RateLimiter:
    """Fixed-window limiter over a CounterStore."""

    def __init__(self, store: CounterStore, enabled: bool = True):
        self.store = store
        self.enabled = enabled

    async def check_limit(
        self,
        client_key: str,
        max_requests: int,
        window_seconds: int,
        namespace: Optional[str] = None,
    ) -> int:
        """Count a request; raise RateLimitError once `max_requests` is exceeded.

        Returns the request's position in the current window (0 when disabled).
        """
        if not self.enabled:
            return 0

        key = f"{namespace or 'default'}:{client_key}"
        count, remaining = await self.store.hit(key, window_seconds)
        if count > max_requests:
            logger.warning(
                "rate_limit.exceeded",
                key=key,
                count=count,
                max_requests=max_requests,
            )
            raise RateLimitError(retry_after=max(1, math.ceil(remaining)))
        return count

    async def sweep(self) -> int:
        removed = await self.store.sweep()
        if removed:
            logger.debug("rate_limit.swept", removed=removed)
        return removed


def client_address(request: Request) -> str:
    """First X-Forwarded-For hop, else the socket peer, else "unknown"."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


@dataclass(frozen=True)
class RateLimitRule:
    method: str
    path: str
    namespace: str
    max_requests: int
    window_seconds: int


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Apply RateLimitRules to matching requests.

    Learn: Middleware runs outside FastAPI's exception handlers, so a
    RateLimitError is rendered to a 429 response right here.
    """

    def __init__(self, app, limiter: RateLimiter, rules: list[RateLimitRule]):
        super().__init__(app)
        self.limiter = limiter
        self.rules = {(r.method, r.path): r for r in rules}

    async def dispatch(self, request: Request, call_next) -> Response:
        rule = self.rules.get((request.method, request.url.path))
        if rule is None or not self.limiter.enabled:
            return await call_next(request)

        try:
            count = await self.limiter.check_limit(
                client_address(request),
                rule.max_requests,
                rule.window_seconds,
                namespace=rule.namespace,
            )
        except RateLimitError as e:
            return JSONResponse(
                status_code=e.status_code,
                content={"detail": e.detail},
                headers=e.headers,
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(rule.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(max(0, rule.max_requests - count))
        return response
