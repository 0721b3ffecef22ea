from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from redis.asyncio import from_url

from tollgate.config import Settings, get_settings
from tollgate.core.limiter import RateLimiter
from tollgate.core.storage.redis import RedisBackend

logger = structlog.get_logger()


def create_rate_limiter(settings: Settings | None = None) -> RateLimiter:
    """
    Build a RateLimiter backed by the Redis instance named in settings.

    The caller owns the connection: close it with `await limiter.backend.close()`,
    or use open_rate_limiter which does so on exit.
    """
    settings = settings or get_settings()

    redis_client = from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_connect_timeout,
    )

    backend = RedisBackend(redis_client)
    return RateLimiter(backend, key_prefix=settings.rate_limit_key_prefix)


@asynccontextmanager
async def open_rate_limiter(settings: Settings | None = None) -> AsyncIterator[RateLimiter]:
    """Yield a Redis-backed RateLimiter and close its connection afterwards."""
    limiter = create_rate_limiter(settings)
    logger.info("rate_limiter_opened", key_prefix=limiter.key_prefix)
    try:
        yield limiter
    finally:
        await limiter.backend.close()
        logger.info("rate_limiter_closed")
