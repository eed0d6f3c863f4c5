"""Redis connection management.

Mirrors engine.py: when REDIS_URL is configured a shared connection pool
is created at import time; otherwise ``redis_pool`` is None and the
notification queue falls back to its in-memory implementation.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from app.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=20,
    )
else:
    redis_pool = None


async def ping_redis() -> bool:
    if redis_pool is None:
        return False
    try:
        await redis_pool.ping()  # type: ignore[misc]  # redis stubs mistype async ping as bool
    except Exception:
        logger.warning("Redis ping failed", exc_info=True)
        return False
    return True


@asynccontextmanager
async def lifespan_redis():
    """Startup/shutdown hook for Redis, mirroring lifespan_db()."""
    if redis_pool is None:
        logger.info("No REDIS_URL configured, notifications use the in-memory queue")
        yield
        return

    if await ping_redis():
        logger.info("Redis connected")
    else:
        # Keep serving: notifications are fire-and-forget and failures are counted.
        logger.error("Redis unreachable on startup, notifications will fail until it recovers")

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
