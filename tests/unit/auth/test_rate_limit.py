"""Unit tests for the fixed-window rate limiter."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from conduit.auth.rate_limit import FixedWindowRateLimiter, WindowKind

pytestmark = [pytest.mark.unit, pytest.mark.asyncio]

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def limiter(fake_redis):
    return FixedWindowRateLimiter(redis_client=fake_redis, clock=lambda: T0)


async def test_limit_boundary_within_one_window(limiter):
    results = [
        await limiter.check_and_increment("key_1", WindowKind.MINUTE, 3, now=T0 + timedelta(seconds=i))
        for i in range(4)
    ]

    assert [r.allowed for r in results] == [True, True, True, False]
    assert [r.remaining for r in results] == [2, 1, 0, 0]


async def test_rejected_requests_keep_counting(limiter, fake_redis):
    for _ in range(5):
        await limiter.check_and_increment("key_1", WindowKind.MINUTE, 2, now=T0)

    key = limiter.counter_key("key_1", WindowKind.MINUTE, T0)
    assert fake_redis.counters[key] == 5
    assert fake_redis.ttls[key] == 120


async def test_next_window_resets_the_count(limiter):
    await limiter.check_and_increment("key_1", WindowKind.MINUTE, 1, now=T0)
    rejected = await limiter.check_and_increment("key_1", WindowKind.MINUTE, 1, now=T0 + timedelta(seconds=59))
    fresh = await limiter.check_and_increment("key_1", WindowKind.MINUTE, 1, now=T0 + timedelta(seconds=60))

    assert rejected.allowed is False
    assert fresh.allowed is True


async def test_retry_after_is_time_to_window_end(limiter):
    await limiter.check_and_increment("key_1", WindowKind.MINUTE, 1, now=T0)
    result = await limiter.check_and_increment("key_1", WindowKind.MINUTE, 1, now=T0 + timedelta(seconds=45))

    assert result.retry_after_seconds == 15
    assert result.window_start == T0


async def test_retry_after_is_at_least_one_second(limiter):
    result = await limiter.check_and_increment(
        "key_1", WindowKind.MINUTE, 0, now=T0 + timedelta(seconds=59, milliseconds=999)
    )

    assert result.allowed is False
    assert result.retry_after_seconds == 1


async def test_day_window_uses_its_own_counter(limiter, fake_redis):
    await limiter.check_and_increment("key_1", WindowKind.MINUTE, 10, now=T0)
    day = await limiter.check_and_increment("key_1", WindowKind.DAY, 10, now=T0)

    assert day.window_start == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert day.remaining == 9
    assert len(fake_redis.counters) == 2


async def test_keys_are_counted_separately(limiter):
    await limiter.check_and_increment("key_1", WindowKind.MINUTE, 1, now=T0)

    other = await limiter.check_and_increment("key_2", WindowKind.MINUTE, 1, now=T0)

    assert other.allowed is True


async def test_fails_open_when_redis_errors(limiter, fake_redis):
    fake_redis.error = RedisConnectionError("down")

    result = await limiter.check_and_increment("key_1", WindowKind.MINUTE, 0, now=T0)

    assert result.allowed is True
    assert result.remaining == 0


async def test_fails_open_when_redis_cannot_connect(monkeypatch):
    async def unavailable():
        raise RedisConnectionError("refused")

    monkeypatch.setattr("conduit.db.redis.get_redis", unavailable)

    result = await FixedWindowRateLimiter().check_and_increment("key_1", WindowKind.MINUTE, 5, now=T0)

    assert result.allowed is True
    assert result.remaining == 5
