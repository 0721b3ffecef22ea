"""
Abstract base class for storage backends.

The rate limiter needs very little from its store:

- Scalar string GET/SET (with an optional expiry) and DELETE
- An atomic "evaluate script" primitive that reads and writes several
  keys as one indivisible unit
- The store's own clock, so every caller agrees on what "now" is

Separating storage from algorithms allows:
- Testing with the in-memory backend (no Redis needed)
- Swapping Redis for any store offering the same atomic primitive
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Protocol, Sequence


class KeyValueView(Protocol):
    """The store operations available to a transition while it runs atomically."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl_ms: int | None = None) -> None: ...


@dataclass(frozen=True)
class AtomicScript:
    """
    One atomic read-modify-write transaction, in two renditions.

    Attributes:
        name: Short identifier used in logs.
        lua: Source executed server-side by Redis (EVAL).
        transition: Python equivalent executed by in-process backends while
            they hold their lock. Receives the store view, KEYS and ARGV
            exactly as the Lua source does, and returns the same reply.
    """

    name: str
    lua: str
    transition: Callable[[KeyValueView, Sequence[str], Sequence[str]], str]


class StorageBackend(ABC):
    """
    Abstract base class for rate limit state storage.

    Implementations must guarantee that every eval_script call is
    serialized with respect to every other call touching the same keys.
    That single property is what keeps the algorithms correct without any
    client-side locking.

    Available implementations:
    - InMemoryBackend: For testing and single-process use
    - RedisBackend: For production (shared by every instance)
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the stored value, or None if the key is absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl_ms: int | None = None) -> None:
        """
        Store a scalar value.

        Args:
            key: The key to store under.
            value: String value.
            ttl_ms: Optional time-to-live in milliseconds.
        """

    @abstractmethod
    async def delete(self, *keys: str) -> None:
        """Delete keys. Missing keys are ignored."""

    @abstractmethod
    async def eval_script(
        self,
        script: AtomicScript,
        keys: Sequence[str],
        args: Sequence[str | int],
    ) -> str | bytes:
        """
        Run a script as one atomic, isolated unit.

        Args:
            script: The transaction to run.
            keys: Store keys the script reads and writes (KEYS).
            args: Script arguments (ARGV). Passed to the store as strings.

        Returns:
            The raw scalar reply of the script.
        """

    @abstractmethod
    async def time(self) -> tuple[int, int]:
        """
        Return the store's current time.

        Returns:
            (seconds since the Unix epoch, microseconds within that second)
        """

    async def close(self) -> None:
        """Release connections held by the backend."""
        return None
