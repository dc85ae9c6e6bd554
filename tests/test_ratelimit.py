"""Tests for the client-side rate limiter."""

import pytest

from mindloop.ratelimit import RateLimiter


@pytest.fixture
def limiter(clock):
    return RateLimiter(
        max_calls=3, window=60, min_interval=2, cooldown=120, clock=clock, sleep=clock.sleep
    )


class TestWindowCap:
    @pytest.mark.asyncio
    async def test_cap_plus_one_is_refused(self, limiter):
        for _ in range(3):
            assert await limiter.acquire() is True
        assert await limiter.acquire() is False
        assert limiter.status()["calls_remaining"] == 0

    @pytest.mark.asyncio
    async def test_window_rollover_resets_count(self, limiter, clock):
        for _ in range(3):
            await limiter.acquire()
        clock.advance(61)
        assert await limiter.acquire() is True
        assert limiter.status()["call_count"] == 1


class TestSpacing:
    @pytest.mark.asyncio
    async def test_waits_out_min_interval(self, limiter, clock):
        await limiter.acquire()
        start = clock.now
        assert await limiter.acquire() is True
        assert clock.now - start == pytest.approx(2)

    @pytest.mark.asyncio
    async def test_no_wait_when_spaced(self, limiter, clock):
        await limiter.acquire()
        clock.advance(5)
        start = clock.now
        await limiter.acquire()
        assert clock.now == start


class TestCooldown:
    @pytest.mark.asyncio
    async def test_signal_blocks_until_cooldown_expires(self, limiter, clock):
        limiter.signal_rate_limited()
        assert await limiter.acquire() is False
        assert limiter.status()["cooldown_remaining"] == pytest.approx(120)
        clock.advance(121)
        assert await limiter.acquire() is True

    def test_reset_clears_cooldown(self, limiter):
        limiter.signal_rate_limited()
        assert limiter.is_throttled()
        limiter.reset()
        assert not limiter.is_throttled()


class TestStatus:
    @pytest.mark.asyncio
    async def test_status_fields(self, limiter, clock):
        await limiter.acquire()
        clock.advance(10)
        status = limiter.status()
        assert status["call_count"] == 1
        assert status["calls_remaining"] == 2
        assert status["time_until_reset"] == pytest.approx(50)
        assert status["is_throttled"] is False
