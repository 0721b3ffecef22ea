from contextlib import contextmanager
from typing import Iterator, Sequence

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError, TimeoutError as RedisTimeoutError

from tollgate.core.exceptions import StoreTimeout, StoreUnavailable
from tollgate.core.storage.base import AtomicScript, StorageBackend

logger = structlog.get_logger()


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    # redis-py raises TimeoutError and ConnectionError as siblings, so the
    # timeout case has to be matched first
    try:
        yield
    except RedisTimeoutError as exc:
        logger.warning("store_timeout", operation=operation, error=str(exc))
        raise StoreTimeout(f"redis {operation} timed out") from exc
    except RedisError as exc:
        logger.warning("store_unavailable", operation=operation, error=str(exc))
        raise StoreUnavailable(f"redis {operation} failed: {exc}") from exc


def _decode(value: str | bytes | None) -> str | None:
    if isinstance(value, bytes):
        return value.decode()
    return value


class RedisBackend(StorageBackend):
    def __init__(self, redis: Redis):
        self._redis = redis

    async def get(self, key: str) -> str | None:
        with _store_errors("get"):
            return _decode(await self._redis.get(key))

    async def set(self, key: str, value: str, ttl_ms: int | None = None) -> None:
        with _store_errors("set"):
            await self._redis.set(key, value, px=ttl_ms)

    async def delete(self, *keys: str) -> None:
        if not keys:
            return
        with _store_errors("delete"):
            await self._redis.delete(*keys)

    # Redis runs a Lua script to completion before serving any other command
    async def eval_script(
        self,
        script: AtomicScript,
        keys: Sequence[str],
        args: Sequence[str | int],
    ) -> str | bytes:
        with _store_errors(f"eval:{script.name}"):
            return await self._redis.eval(script.lua, len(keys), *keys, *args)

    async def time(self) -> tuple[int, int]:
        with _store_errors("time"):
            seconds, microseconds = await self._redis.time()
        return int(seconds), int(microseconds)

    async def close(self) -> None:
        await self._redis.aclose()
