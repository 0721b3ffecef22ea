"""
Shared clock.

Every decision is made against the store's own clock, never the caller's.
Instances of a service run on different machines whose wall clocks drift;
reading time from the single store that also serializes the decisions
keeps every caller on one timeline.

Time is carried as integer ticks of 100 nanoseconds so the algorithms can
work with exact integer arithmetic.
"""

from tollgate.core.storage.base import StorageBackend

TICKS_PER_SECOND = 10_000_000
TICKS_PER_MICROSECOND = 10


def ticks_from_time(seconds: int, microseconds: int) -> int:
    """Convert a (seconds, microseconds) pair, as returned by Redis TIME, to ticks."""
    return seconds * TICKS_PER_SECOND + microseconds * TICKS_PER_MICROSECOND


def seconds_to_ticks(seconds: int) -> int:
    return seconds * TICKS_PER_SECOND


def ticks_to_seconds(ticks: int | float) -> float:
    return ticks / TICKS_PER_SECOND


class SharedClock:
    """
    Reads the current instant from the shared store.

    There is deliberately no local fallback: if the store cannot be
    reached, StoreUnavailable propagates to the caller.
    """

    def __init__(self, backend: StorageBackend):
        self.backend = backend

    async def now(self) -> int:
        """Return the store's current time in ticks since the Unix epoch."""
        seconds, microseconds = await self.backend.time()
        return ticks_from_time(seconds, microseconds)
