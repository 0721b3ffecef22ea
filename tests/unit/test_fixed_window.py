"""
Unit tests for the Fixed Window algorithm.

These run the full RateLimiter against InMemoryBackend with a fake clock,
so window boundaries are hit exactly instead of by sleeping.

Run tests:
    pytest tests/unit/test_fixed_window.py -v
"""

import asyncio

import pytest

from tollgate.core.clock import TICKS_PER_SECOND
from tollgate.core.limiter import RateLimiter
from tollgate.core.models import Algorithm, FixedWindowRequest, ThrottleRequest
from tollgate.core.storage.memory import InMemoryBackend


# =============================================================================
# Basic Behavior Tests
# =============================================================================


class TestBasicBehavior:
    """Tests for fundamental allow/deny functionality."""

    @pytest.mark.asyncio
    async def test_first_request_is_allowed(self, limiter: RateLimiter) -> None:
        """First request for a fresh key is always allowed with no wait."""
        result = await limiter.validate(FixedWindowRequest("Test1", capacity=1, window_size=1))

        assert result.allowed
        assert result.reset_after == 0

    @pytest.mark.asyncio
    async def test_exactly_capacity_requests_are_allowed(self, limiter: RateLimiter) -> None:
        request = FixedWindowRequest("Test2", capacity=3, window_size=10)

        results = [await limiter.validate(request) for _ in range(10)]

        assert [r.allowed for r in results] == [True] * 3 + [False] * 7
        assert all(r.reset_after == 0 for r in results[:3])

    @pytest.mark.asyncio
    async def test_denied_requests_report_full_window_at_start(self, limiter: RateLimiter) -> None:
        """Denials issued right as the window begins must wait the whole window."""
        request = FixedWindowRequest("Test3", capacity=1, window_size=1)

        results = [await limiter.validate(request) for _ in range(10)]

        assert results[0].allowed
        denied = [r for r in results if not r.allowed]
        assert len(denied) == 9
        assert all(r.reset_after == request.window_size for r in denied)


# =============================================================================
# Window Expiration Tests
# =============================================================================


class TestWindowExpiration:
    """Tests for window expiration behavior."""

    @pytest.mark.asyncio
    async def test_reset_after_decreases_over_time(self, limiter: RateLimiter, clock) -> None:
        request = FixedWindowRequest("user:decrease", capacity=1, window_size=10)
        await limiter.validate(request)

        waits = []
        for _ in range(3):
            clock.advance(2)
            waits.append((await limiter.validate(request)).reset_after)

        assert waits == [8.0, 6.0, 4.0]

    @pytest.mark.asyncio
    async def test_sub_second_reset_after(self, limiter: RateLimiter, clock) -> None:
        request = FixedWindowRequest("user:fraction", capacity=1, window_size=10)
        await limiter.validate(request)

        clock.advance(9.75)
        result = await limiter.validate(request)

        assert not result.allowed
        assert result.reset_after == pytest.approx(0.25)

    @pytest.mark.asyncio
    async def test_next_window_allows_capacity_again(self, limiter: RateLimiter, clock) -> None:
        request = FixedWindowRequest("Test3", capacity=5, window_size=2)

        first = [(await limiter.validate(request)).allowed for _ in range(10)]
        assert first.count(True) == request.capacity

        clock.advance(request.window_size)

        second = [(await limiter.validate(request)).allowed for _ in range(10)]
        assert second.count(True) == request.capacity
        assert second[: request.capacity] == [True] * request.capacity

    @pytest.mark.asyncio
    async def test_boundary_is_a_new_window(self, limiter: RateLimiter, clock) -> None:
        """Elapsed time exactly equal to the window size starts a new window."""
        request = FixedWindowRequest("user:boundary", capacity=1, window_size=5)
        await limiter.validate(request)

        clock.advance(4.999999)
        assert not (await limiter.validate(request)).allowed

        clock.advance(0.000001)
        assert (await limiter.validate(request)).allowed

    @pytest.mark.asyncio
    async def test_denials_do_not_extend_the_window(self, limiter: RateLimiter, clock) -> None:
        request = FixedWindowRequest("user:extend", capacity=1, window_size=3)
        await limiter.validate(request)

        for _ in range(3):
            clock.advance(0.5)
            assert not (await limiter.validate(request)).allowed

        clock.advance(1.5)
        assert (await limiter.validate(request)).allowed


# =============================================================================
# Persisted State Tests
# =============================================================================


class TestPersistedState:
    """Tests for what the atomic transition writes back."""

    @pytest.mark.asyncio
    async def test_count_and_window_start_are_stored(
        self,
        limiter: RateLimiter,
        backend: InMemoryBackend,
        clock,
    ) -> None:
        request = FixedWindowRequest("user:state", capacity=2, window_size=60)
        keys = limiter.storage_keys(Algorithm.FIXED_WINDOW, request.key)
        window_start = int(clock.now) * TICKS_PER_SECOND

        await limiter.validate(request)
        assert await backend.get(keys.counter) == "1"
        assert await backend.get(keys.timestamp) == str(window_start)

        clock.advance(1)
        await limiter.validate(request)
        await limiter.validate(request)

        # Denials are counted and the window start does not move
        assert await backend.get(keys.counter) == "3"
        assert await backend.get(keys.timestamp) == str(window_start)

    @pytest.mark.asyncio
    async def test_state_expires_with_the_window(
        self,
        limiter: RateLimiter,
        backend: InMemoryBackend,
        clock,
    ) -> None:
        request = FixedWindowRequest("user:expiry", capacity=1, window_size=10)
        await limiter.validate(request)
        assert len(backend.keys()) == 2

        clock.advance(10.5)

        assert backend.keys() == []
        assert (await limiter.validate(request)).allowed


# =============================================================================
# Key Isolation Tests
# =============================================================================


class TestKeyIsolation:
    """Tests for isolation between different rate limit keys."""

    @pytest.mark.asyncio
    async def test_different_keys_have_independent_limits(self, limiter: RateLimiter) -> None:
        await limiter.validate(FixedWindowRequest("user:A", capacity=1, window_size=60))

        result_a = await limiter.validate(FixedWindowRequest("user:A", capacity=1, window_size=60))
        result_b = await limiter.validate(FixedWindowRequest("user:B", capacity=1, window_size=60))

        assert not result_a.allowed
        assert result_b.allowed

    @pytest.mark.asyncio
    async def test_same_key_is_separate_from_throttle_state(self, limiter: RateLimiter) -> None:
        await limiter.validate(FixedWindowRequest("shared", capacity=1, window_size=60))
        assert not (await limiter.validate(FixedWindowRequest("shared", capacity=1, window_size=60))).allowed

        result = await limiter.validate(ThrottleRequest("shared", capacity=1, refill_rate=1))

        assert result.allowed

    @pytest.mark.asyncio
    async def test_special_characters_in_key(self, limiter: RateLimiter) -> None:
        special_keys = [
            "user:email@example.com",
            "ip:192.168.1.1",
            "api:key-with-dashes",
            "user:名前",
        ]

        for key in special_keys:
            result = await limiter.validate(FixedWindowRequest(key, capacity=1, window_size=60))
            assert result.allowed, f"Key '{key}' should be allowed"


# =============================================================================
# Concurrency Tests
# =============================================================================


class TestConcurrency:
    """Concurrent callers racing on one key never exceed capacity."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_capacity(self, limiter: RateLimiter) -> None:
        request = FixedWindowRequest("Test4", capacity=20, window_size=2)

        async def execute() -> list[bool]:
            return [(await limiter.validate(request)).allowed for _ in range(10)]

        batches = await asyncio.gather(*(execute() for _ in range(5)))
        results = [allowed for batch in batches for allowed in batch]

        assert len(results) == 50
        assert results.count(True) == request.capacity

    @pytest.mark.asyncio
    async def test_many_limiters_on_one_store(self, backend: InMemoryBackend) -> None:
        """Separate limiter instances, as in separate processes, share one budget."""
        limiters = [RateLimiter(backend) for _ in range(4)]
        request = FixedWindowRequest("user:fleet", capacity=7, window_size=60)

        results = await asyncio.gather(
            *(limiters[i % 4].validate(request) for i in range(40))
        )

        assert sum(r.allowed for r in results) == request.capacity
