"""
Shared fixtures.

Algorithm tests run against InMemoryBackend driven by a FakeClock, so time
only moves when a test says so. No Redis is needed.
"""

import pytest

from tollgate.core.limiter import RateLimiter
from tollgate.core.storage.memory import InMemoryBackend

START = 1_700_000_000.0


class FakeClock:
    """Stands in for the store's clock. Returns Unix time in seconds."""

    def __init__(self, start: float = START):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend(clock: FakeClock) -> InMemoryBackend:
    """Create a fresh in-memory backend for each test."""
    return InMemoryBackend(clock=clock)


@pytest.fixture
def limiter(backend: InMemoryBackend) -> RateLimiter:
    return RateLimiter(backend)
