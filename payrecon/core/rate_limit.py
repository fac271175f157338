"""
Rate limiting for the admin API.

Handlers never touch process-global counters: the application holds one
``RateLimiter`` on ``app.state`` (Redis-backed when REDIS_URL is set, in-memory
otherwise) and the ``rate_limit_admin`` dependency consumes a token per request.
"""

import logging
import math
import time
from typing import Callable, Dict, Optional, Tuple

from fastapi import HTTPException, Request, Response, status
from pydantic import BaseModel

from payrecon.core.config import RATE_LIMIT_DURATION, RATE_LIMIT_POINTS, REDIS_URL

log = logging.getLogger("payrecon.rate_limit")


class RateLimitResult(BaseModel):
    allowed: bool
    limit: int
    remaining: int
    reset_after: float  # seconds until the current window resets


class RateLimiter:
    """Interface: consume one token for ``key``."""

    points: int = RATE_LIMIT_POINTS
    duration: int = RATE_LIMIT_DURATION

    async def consume(self, key: str) -> RateLimitResult:
        raise NotImplementedError


class InMemoryRateLimiter(RateLimiter):
    """Fixed-window limiter for tests and single-process development."""

    def __init__(self, points: int = RATE_LIMIT_POINTS, duration: int = RATE_LIMIT_DURATION,
                 clock: Callable[[], float] = time.monotonic):
        self.points = points
        self.duration = duration
        self._clock = clock
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._next_sweep = self._clock() + duration

    def _sweep(self, now: float) -> None:
        """Drops windows that have already reset."""
        self._windows = {k: w for k, w in self._windows.items() if w[1] > now}
        self._next_sweep = now + self.duration

    async def consume(self, key: str) -> RateLimitResult:
        now = self._clock()
        if now >= self._next_sweep:
            self._sweep(now)
        count, reset_at = self._windows.get(key, (0, now + self.duration))
        if now >= reset_at:
            count, reset_at = 0, now + self.duration
        count += 1
        self._windows[key] = (count, reset_at)
        return RateLimitResult(
            allowed=count <= self.points,
            limit=self.points,
            remaining=max(0, self.points - count),
            reset_after=max(0.0, reset_at - now),
        )


class RedisRateLimiter(RateLimiter):
    """Fixed-window limiter shared across processes via INCR + EXPIRE."""

    key_prefix = "rl_admin"

    def __init__(self, client, points: int = RATE_LIMIT_POINTS, duration: int = RATE_LIMIT_DURATION):
        self.client = client
        self.points = points
        self.duration = duration

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisRateLimiter":
        import redis.asyncio as redis_lib

        return cls(redis_lib.from_url(url, decode_responses=True), **kwargs)

    async def consume(self, key: str) -> RateLimitResult:
        redis_key = f"{self.key_prefix}:{key}"
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.incr(redis_key)
            pipe.expire(redis_key, self.duration, nx=True)
            pipe.ttl(redis_key)
            count, _, ttl = await pipe.execute()
        return RateLimitResult(
            allowed=int(count) <= self.points,
            limit=self.points,
            remaining=max(0, self.points - int(count)),
            reset_after=float(ttl if ttl and ttl > 0 else self.duration),
        )


def build_rate_limiter(redis_url: Optional[str] = REDIS_URL) -> RateLimiter:
    if redis_url:
        log.info("Redis rate limiter initialized.")
        return RedisRateLimiter.from_url(redis_url)
    log.warning("REDIS_URL not set - using in-process rate limiting (single-process only).")
    return InMemoryRateLimiter()


def _client_key(request: Request) -> str:
    # Peer address only. Behind a proxy, run uvicorn with --proxy-headers so
    # request.client is the real caller.
    host = request.client.host if request.client else "unknown"
    return f"i:{host}"


async def rate_limit_admin(request: Request, response: Response):
    """FastAPI dependency: 429 once the caller's window is exhausted."""
    limiter: RateLimiter = request.app.state.rate_limiter
    result = await limiter.consume(_client_key(request))
    response.headers["X-RateLimit-Limit"] = str(result.limit)
    response.headers["X-RateLimit-Remaining"] = str(result.remaining)
    if not result.allowed:
        retry_after = max(1, math.ceil(result.reset_after))
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="rate_limited",
            headers={"Retry-After": str(retry_after)},
        )
