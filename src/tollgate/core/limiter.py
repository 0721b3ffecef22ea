"""
Rate limiter façade.

RateLimiter is the only entry point callers need. It validates a request,
derives the store keys, reads the shared clock and hands over to the
strategy matching the request type. The instance holds no per-key state,
so one limiter can be shared by any number of concurrent tasks, and any
number of processes can point limiters at the same store.
"""

import math
from functools import singledispatchmethod

import structlog

from tollgate.core.clock import SharedClock, ticks_to_seconds
from tollgate.core.exceptions import InvalidArgument, ProtocolError
from tollgate.core.models import (
    Algorithm,
    FixedWindowRequest,
    FixedWindowResult,
    StorageKeys,
    ThrottleRequest,
    ThrottleResult,
)
from tollgate.core.storage.base import StorageBackend
from tollgate.core.strategies.base import RateLimitStrategy
from tollgate.core.strategies.fixed_window import FixedWindowStrategy
from tollgate.core.strategies.throttle import ThrottleStrategy

logger = structlog.get_logger()

DEFAULT_KEY_PREFIX = "ratelimit"


def parse_reply(raw: object) -> tuple[bool, float]:
    """
    Split a script reply into (allowed, wait in ticks).

    Raises:
        ProtocolError: If the reply is not "<0|1>,<non-negative number>".
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode()
        except UnicodeDecodeError as exc:
            raise ProtocolError(raw, "reply is not valid UTF-8") from exc
    if not isinstance(raw, str):
        raise ProtocolError(raw, "expected a string reply")

    flag, sep, wait = raw.partition(",")
    if not sep:
        raise ProtocolError(raw, "missing ',' separator")
    if flag not in ("0", "1"):
        raise ProtocolError(raw, "decision flag must be 0 or 1")
    try:
        wait_ticks = float(wait)
    except ValueError as exc:
        raise ProtocolError(raw, "wait value is not a number") from exc
    if not math.isfinite(wait_ticks) or wait_ticks < 0:
        raise ProtocolError(raw, "wait value must be a non-negative number")

    return flag == "1", wait_ticks


def _check_key(key: object, field: str = "key") -> None:
    if not isinstance(key, str) or not key.strip():
        raise InvalidArgument(field, "identifier must be specified")
    if any(ch.isspace() for ch in key):
        raise InvalidArgument(field, "identifier cannot contain whitespace")


def _check_positive(field: str, value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(field, "must be an integer")
    if value <= 0:
        raise InvalidArgument(field, "must be greater than zero")


class RateLimiter:
    """
    Decides whether one request for one key is allowed right now.

    Every call reads and writes the store, allowed or denied: validate is
    not a pure read.

    Example:
        >>> limiter = RateLimiter(RedisBackend(redis_client))
        >>> result = await limiter.validate(FixedWindowRequest("client:42", 1000, 86400))
        >>> if not result.allowed:
        ...     retry_in = result.reset_after
    """

    def __init__(
        self,
        backend: StorageBackend,
        *,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        clock: SharedClock | None = None,
    ):
        _check_key(key_prefix, field="key_prefix")
        self.backend = backend
        self.key_prefix = key_prefix
        self.clock = clock or SharedClock(backend)
        self.strategies: dict[Algorithm, RateLimitStrategy] = {
            Algorithm.FIXED_WINDOW: FixedWindowStrategy(backend),
            Algorithm.THROTTLE: ThrottleStrategy(backend),
        }

    def storage_keys(self, algorithm: Algorithm, key: str) -> StorageKeys:
        base = f"{self.key_prefix}:{algorithm.value}:{key}"
        return StorageKeys(counter=f"{base}:count", timestamp=f"{base}:ticks")

    @singledispatchmethod
    async def validate(self, request: object):
        """
        Check a request against its algorithm and record it.

        Dispatches on the request type:
            FixedWindowRequest -> FixedWindowResult
            ThrottleRequest -> ThrottleResult

        Raises:
            InvalidArgument: Malformed request. Nothing was written.
            StoreUnavailable: The store could not be reached.
            ProtocolError: The store returned an unparseable reply.
        """
        raise InvalidArgument(
            "request", f"unsupported request type {type(request).__name__}"
        )

    @validate.register(FixedWindowRequest)
    async def _validate_fixed_window(self, request: FixedWindowRequest) -> FixedWindowResult:
        _check_key(request.key)
        _check_positive("capacity", request.capacity)
        _check_positive("window_size", request.window_size)

        allowed, wait_ticks = await self._decide(Algorithm.FIXED_WINDOW, request)
        return FixedWindowResult(
            allowed=allowed,
            reset_after=0.0 if allowed else ticks_to_seconds(wait_ticks),
        )

    @validate.register(ThrottleRequest)
    async def _validate_throttle(self, request: ThrottleRequest) -> ThrottleResult:
        _check_key(request.key)
        _check_positive("capacity", request.capacity)
        _check_positive("refill_rate", request.refill_rate)

        allowed, wait_ticks = await self._decide(Algorithm.THROTTLE, request)
        return ThrottleResult(
            allowed=allowed,
            retry_after=0.0 if allowed else ticks_to_seconds(wait_ticks),
        )

    async def _decide(
        self,
        algorithm: Algorithm,
        request: FixedWindowRequest | ThrottleRequest,
    ) -> tuple[bool, float]:
        keys = self.storage_keys(algorithm, request.key)
        now_ticks = await self.clock.now()
        raw = await self.strategies[algorithm].check(keys, now_ticks, request)

        try:
            allowed, wait_ticks = parse_reply(raw)
        except ProtocolError:
            logger.error("protocol_error", algorithm=algorithm.value, key=request.key, raw=repr(raw))
            raise

        logger.info(
            "rate_limit_check",
            algorithm=algorithm.value,
            key=request.key,
            capacity=request.capacity,
            allowed=allowed,
            wait_seconds=0.0 if allowed else ticks_to_seconds(wait_ticks),
        )
        return allowed, wait_ticks

    async def reset(self, key: str, algorithm: Algorithm | None = None) -> None:
        """
        Forget the recorded state of a key.

        Args:
            key: The rate limit key to reset.
            algorithm: Only reset this algorithm's state. Both when None.
        """
        _check_key(key)
        algorithms = [algorithm] if algorithm is not None else list(Algorithm)
        for algo in algorithms:
            await self.strategies[algo].reset(self.storage_keys(algo, key))
        logger.info("rate_limit_reset", key=key, algorithms=[a.value for a in algorithms])
