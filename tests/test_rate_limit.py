import asyncio

import pytest

from leadmagnet_service.rate_limit import RateLimiter

from .helpers import FakeClock


@pytest.mark.asyncio
async def test_allows_up_to_max_attempts_then_rejects():
    limiter = RateLimiter(max_attempts=3, window_seconds=3600, clock=FakeClock())

    assert [await limiter.allow("a@x.com") for _ in range(3)] == [True, True, True]
    assert await limiter.allow("a@x.com") is False
    assert await limiter.allow("a@x.com") is False


@pytest.mark.asyncio
async def test_identities_are_counted_separately_and_case_sensitive():
    limiter = RateLimiter(max_attempts=1, window_seconds=60, clock=FakeClock())

    assert await limiter.allow("a@x.com") is True
    assert await limiter.allow("a@x.com") is False
    assert await limiter.allow("b@x.com") is True
    assert await limiter.allow("A@x.com") is True


@pytest.mark.asyncio
async def test_window_starts_at_first_attempt_and_resets_after_expiry():
    clock = FakeClock()
    limiter = RateLimiter(max_attempts=2, window_seconds=100, clock=clock)

    assert await limiter.allow("a@x.com")
    clock.advance(60)
    assert await limiter.allow("a@x.com")
    clock.advance(40)
    # exactly at reset_at the window is still closed
    assert await limiter.allow("a@x.com") is False
    clock.advance(1)
    assert await limiter.allow("a@x.com") is True
    assert await limiter.allow("a@x.com") is True
    assert await limiter.allow("a@x.com") is False


@pytest.mark.asyncio
async def test_rejected_attempts_do_not_extend_window():
    clock = FakeClock()
    limiter = RateLimiter(max_attempts=1, window_seconds=10, clock=clock)

    assert await limiter.allow("a@x.com")
    for _ in range(5):
        clock.advance(2)
        assert await limiter.allow("a@x.com") is False
    clock.advance(1)
    assert await limiter.allow("a@x.com") is True


@pytest.mark.asyncio
async def test_concurrent_attempts_never_exceed_limit():
    limiter = RateLimiter(max_attempts=3, window_seconds=3600, clock=FakeClock())

    results = await asyncio.gather(*(limiter.allow("a@x.com") for _ in range(20)))
    assert results.count(True) == 3


@pytest.mark.asyncio
async def test_reset_forgets_counters():
    limiter = RateLimiter(max_attempts=1, window_seconds=3600, clock=FakeClock())
    await limiter.allow("a@x.com")
    await limiter.allow("b@x.com")

    await limiter.reset("a@x.com")
    assert await limiter.allow("a@x.com") is True
    assert await limiter.allow("b@x.com") is False

    await limiter.reset()
    assert await limiter.allow("b@x.com") is True
