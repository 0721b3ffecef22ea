"""
In-memory storage backend for testing and single-process use.

This backend stores all data in Python dictionaries, making it:
- Fast: No network calls
- Simple: No external dependencies
- Deterministic: The clock can be injected, so tests control time

WARNING: Not suitable for multi-instance deployments!
- No persistence (data lost on restart)
- No distribution (the "shared" clock is only shared within the process)

Use RedisBackend when more than one process makes decisions.
"""

import threading
import time
from typing import Callable, Sequence

from tollgate.core.storage.base import AtomicScript, StorageBackend


class _LockedView:
    """Store view handed to a transition while the backend lock is held."""

    def __init__(self, backend: "InMemoryBackend"):
        self._backend = backend

    def get(self, key: str) -> str | None:
        return self._backend._get(key)

    def set(self, key: str, value: str, ttl_ms: int | None = None) -> None:
        self._backend._set(key, value, ttl_ms)


class InMemoryBackend(StorageBackend):
    """
    In-memory implementation of StorageBackend.

    Stores scalar values in a dictionary with TTL checked on access.
    Scripts run their Python transition while holding a lock, which gives
    the same isolation Redis gives a Lua script: concurrent tasks, and
    threads sharing the instance, never observe a half-applied transition.

    Example:
        >>> backend = InMemoryBackend(clock=lambda: 1700000000.25)
        >>> await backend.time()
        (1700000000, 250000)
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        """
        Args:
            clock: Time source returning Unix time in seconds. It plays the
                role of the store's own clock (Redis TIME).
        """
        self._clock = clock
        self._lock = threading.Lock()

        # Key-value storage: key -> value
        self._data: dict[str, str] = {}

        # Expiration times: key -> unix timestamp when key expires
        self._expiry: dict[str, float] = {}

    def _is_expired(self, key: str) -> bool:
        if key in self._expiry:
            return self._clock() > self._expiry[key]
        return False

    def _cleanup_if_expired(self, key: str) -> bool:
        """
        Remove key if expired.

        Returns:
            True if key was expired and removed, False otherwise.
        """
        if self._is_expired(key):
            self._data.pop(key, None)
            self._expiry.pop(key, None)
            return True
        return False

    def _get(self, key: str) -> str | None:
        if self._cleanup_if_expired(key):
            return None
        return self._data.get(key)

    def _set(self, key: str, value: str, ttl_ms: int | None) -> None:
        self._data[key] = str(value)
        if ttl_ms is None:
            self._expiry.pop(key, None)
        else:
            self._expiry[key] = self._clock() + ttl_ms / 1000

    # =========================================================================
    # StorageBackend interface
    # =========================================================================

    async def get(self, key: str) -> str | None:
        with self._lock:
            return self._get(key)

    async def set(self, key: str, value: str, ttl_ms: int | None = None) -> None:
        with self._lock:
            self._set(key, value, ttl_ms)

    async def delete(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._data.pop(key, None)
                self._expiry.pop(key, None)

    async def eval_script(
        self,
        script: AtomicScript,
        keys: Sequence[str],
        args: Sequence[str | int],
    ) -> str:
        # ARGV always reaches a Lua script as strings
        argv = [str(arg) for arg in args]
        with self._lock:
            return script.transition(_LockedView(self), list(keys), argv)

    async def time(self) -> tuple[int, int]:
        seconds, microseconds = divmod(round(self._clock() * 1_000_000), 1_000_000)
        return int(seconds), int(microseconds)

    # =========================================================================
    # Utility Methods (not part of interface, useful for testing)
    # =========================================================================

    def clear(self) -> None:
        """Clear all stored data."""
        with self._lock:
            self._data.clear()
            self._expiry.clear()

    def keys(self) -> list[str]:
        """Get all non-expired keys."""
        with self._lock:
            return [k for k in self._data if not self._is_expired(k)]
