"""
Request and result types for rate limit checks.

Requests are plain immutable values built by the caller for every check;
nothing here is persisted. Validation happens in RateLimiter.validate so
that a malformed request can still be constructed and reported with the
offending field name.
"""

from dataclasses import dataclass
from enum import StrEnum


class Algorithm(StrEnum):
    """Rate limiting algorithms. The value namespaces the storage keys."""

    FIXED_WINDOW = "fixed"
    THROTTLE = "throttle"


@dataclass(frozen=True)
class FixedWindowRequest:
    """
    Allow `capacity` requests per `window_size` seconds for `key`.

    The window restarts with the first request after it expires. A daily
    or hourly quota is the typical use. This does not smooth out spikes:
    the whole capacity can be spent in the first instant of a window.

    Attributes:
        key: Identifier of the limited entity (client ID, user ID, route).
             Cannot contain whitespace.
        capacity: Requests allowed per window. Must be positive.
        window_size: Window length in seconds. Must be positive.
    """

    key: str
    capacity: int
    window_size: int


@dataclass(frozen=True)
class FixedWindowResult:
    """
    Attributes:
        allowed: Whether the request may proceed.
        reset_after: Seconds until the window resets if denied, 0 if allowed.
    """

    allowed: bool
    reset_after: float = 0.0


@dataclass(frozen=True)
class ThrottleRequest:
    """
    Token bucket: up to `capacity` requests in a burst, refilled at
    `refill_rate` tokens per second.

    Capacity bounds the burst; refill_rate alone sets the sustained rate.
    Spike protection in front of an API is the typical use.

    Attributes:
        key: Identifier of the limited entity. Cannot contain whitespace.
        capacity: Bucket size. Must be positive.
        refill_rate: Tokens added per whole second. Must be positive.
    """

    key: str
    capacity: int
    refill_rate: int


@dataclass(frozen=True)
class ThrottleResult:
    """
    Attributes:
        allowed: Whether the request may proceed.
        retry_after: Seconds until the next token refill if denied, 0 if allowed.
    """

    allowed: bool
    retry_after: float = 0.0


@dataclass(frozen=True)
class StorageKeys:
    """The two store keys holding one key's state for one algorithm."""

    counter: str
    timestamp: str

    def as_list(self) -> list[str]:
        return [self.counter, self.timestamp]
