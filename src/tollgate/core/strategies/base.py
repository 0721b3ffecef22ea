"""
Abstract base class for rate limiting strategies.

This module defines the contract that all rate limiting algorithms must follow.
Every algorithm is one atomic transaction over two store keys: a counter and
the timestamp it was last updated at. The strategy only knows how to run that
transaction; validation, time and reply parsing belong to RateLimiter.

Wire contract of every script:
    KEYS: [counter key, timestamp key]
    ARGV: [current time in ticks, window size in ticks | refill rate, capacity]
    reply: "<1|0>,<wait in ticks>" where 1 means allowed
"""

from abc import ABC, abstractmethod
from typing import Any

from tollgate.core.models import Algorithm, StorageKeys
from tollgate.core.storage.base import AtomicScript, StorageBackend


class RateLimitStrategy(ABC):
    """
    Base class for rate limiting algorithms.

    Subclasses provide the algorithm they implement, the atomic script, and
    how a request maps onto the script's arguments.
    """

    algorithm: Algorithm
    script: AtomicScript

    def __init__(self, backend: StorageBackend):
        self.backend = backend

    @abstractmethod
    async def check(self, keys: StorageKeys, now_ticks: int, request: Any) -> str | bytes:
        """
        Run the atomic transition for one request.

        This method is called for every request being rate limited and
        always writes the new state back, allowed or not.

        Args:
            keys: Store keys holding this request key's state.
            now_ticks: Current shared-clock time.
            request: The already validated request.

        Returns:
            The raw script reply.
        """

    async def evaluate(
        self,
        keys: StorageKeys,
        now_ticks: int,
        param: int,
        capacity: int,
    ) -> str | bytes:
        return await self.backend.eval_script(
            self.script,
            keys=keys.as_list(),
            args=[now_ticks, param, capacity],
        )

    async def reset(self, keys: StorageKeys) -> None:
        """Forget all state for a key. The next request is treated as its first."""
        await self.backend.delete(*keys.as_list())
