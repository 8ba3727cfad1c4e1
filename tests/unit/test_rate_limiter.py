"""
Unit tests for the sliding window rate limiter.
"""

from unittest.mock import patch

import pytest

from replenisher.middleware.rate_limiter import SlidingWindowRateLimiter


@pytest.fixture
def limiter():
    return SlidingWindowRateLimiter()


@pytest.mark.unit
class TestSlidingWindowRateLimiter:
    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self, limiter):
        results = [await limiter.is_allowed("user:42:update", 3, 60) for _ in range(4)]

        assert [allowed for allowed, _ in results] == [True, True, True, False]
        assert [info["remaining"] for _, info in results[:3]] == [2, 1, 0]
        assert results[3][1]["retry_after"] >= 1

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, limiter):
        assert (await limiter.is_allowed("user:42:update", 1, 60))[0]
        assert (await limiter.is_allowed("user:43:update", 1, 60))[0]
        assert (await limiter.is_allowed("user:42:toggle-cancel", 1, 60))[0]
        assert not (await limiter.is_allowed("user:42:update", 1, 60))[0]

    @pytest.mark.asyncio
    async def test_window_slides(self, limiter):
        with patch("replenisher.middleware.rate_limiter.time.monotonic") as clock:
            clock.return_value = 1000.0
            assert (await limiter.is_allowed("k", 1, 10))[0]
            clock.return_value = 1005.0
            assert not (await limiter.is_allowed("k", 1, 10))[0]
            clock.return_value = 1010.5
            assert (await limiter.is_allowed("k", 1, 10))[0]

    @pytest.mark.asyncio
    async def test_cleanup_drops_idle_keys(self, limiter):
        with patch("replenisher.middleware.rate_limiter.time.monotonic") as clock:
            clock.return_value = 100.0
            await limiter.is_allowed("idle", 5, 60)
            clock.return_value = 5000.0
            await limiter.is_allowed("busy", 5, 60)

            removed = await limiter.cleanup_old_entries(max_age_seconds=3600)

        assert removed == 1

    @pytest.mark.asyncio
    async def test_reset(self, limiter):
        await limiter.is_allowed("k", 1, 60)
        limiter.reset()
        assert (await limiter.is_allowed("k", 1, 60))[0]
