"""Shared Redis connection: bid rate limiting and the realtime channels.

Nothing authoritative lives here; a session's state is read from
PostgreSQL and Redis only carries notifications about it.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from redis.asyncio.client import PubSub

from config.settings import settings

_redis: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    global _redis  # noqa: PLW0603
    if _redis is None:
        _redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis


@asynccontextmanager
async def subscription(*channels: str) -> AsyncIterator[PubSub]:
    """Pub/Sub handle subscribed to ``channels``, released on exit."""
    redis = await get_redis()
    pubsub = redis.pubsub()
    await pubsub.subscribe(*channels)
    try:
        yield pubsub
    finally:
        await pubsub.unsubscribe()
        await pubsub.aclose()


async def close_redis() -> None:
    global _redis  # noqa: PLW0603
    if _redis is not None:
        await _redis.aclose()
        _redis = None
