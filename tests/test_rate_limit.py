from unittest.mock import AsyncMock, MagicMock

import pytest

from payrecon.core.rate_limit import InMemoryRateLimiter, RedisRateLimiter, build_rate_limiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.mark.asyncio
class TestInMemoryRateLimiter:
    async def test_window_exhaustion_and_reset(self):
        clock = FakeClock()
        limiter = InMemoryRateLimiter(points=2, duration=60, clock=clock)

        first = await limiter.consume("k")
        second = await limiter.consume("k")
        third = await limiter.consume("k")

        assert (first.allowed, second.allowed, third.allowed) == (True, True, False)
        assert second.remaining == 0
        assert third.reset_after == pytest.approx(60.0)

        clock.now += 61
        assert (await limiter.consume("k")).allowed is True

    async def test_keys_are_independent(self):
        limiter = InMemoryRateLimiter(points=1, duration=60, clock=FakeClock())

        assert (await limiter.consume("a")).allowed is True
        assert (await limiter.consume("b")).allowed is True
        assert (await limiter.consume("a")).allowed is False


def redis_client(count, ttl):
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[count, True, ttl])
    client = MagicMock()
    client.pipeline.return_value.__aenter__ = AsyncMock(return_value=pipe)
    client.pipeline.return_value.__aexit__ = AsyncMock(return_value=False)
    return client, pipe


@pytest.mark.asyncio
class TestRedisRateLimiter:
    async def test_under_limit(self):
        client, pipe = redis_client(count=3, ttl=42)
        limiter = RedisRateLimiter(client, points=5, duration=60)

        result = await limiter.consume("i:10.0.0.1")

        assert result.allowed is True
        assert result.remaining == 2
        assert result.reset_after == 42.0
        pipe.incr.assert_called_once_with("rl_admin:i:10.0.0.1")
        pipe.expire.assert_called_once_with("rl_admin:i:10.0.0.1", 60, nx=True)

    async def test_over_limit(self):
        client, _ = redis_client(count=6, ttl=-1)
        limiter = RedisRateLimiter(client, points=5, duration=60)

        result = await limiter.consume("i:10.0.0.1")

        assert result.allowed is False
        assert result.remaining == 0
        assert result.reset_after == 60.0


def test_build_without_redis_url_is_in_memory():
    assert isinstance(build_rate_limiter(None), InMemoryRateLimiter)


@pytest.mark.asyncio
async def test_expired_windows_are_dropped():
    clock = FakeClock()
    limiter = InMemoryRateLimiter(points=5, duration=60, clock=clock)
    for i in range(50):
        await limiter.consume(f"i:10.0.0.{i}")
    assert len(limiter._windows) == 50

    clock.now += 61
    await limiter.consume("i:127.0.0.1")

    assert list(limiter._windows) == ["i:127.0.0.1"]
