"""Fixed-window rate limiting backed by Redis INCR + EXPIRE.

Used as a route dependency rather than global middleware, so only the
hot auction endpoints (bids) pay for the Redis round trip.

Key pattern: "ratelimit:{group}:{user_id}:{window_start}"
"""

import logging
import time
from collections.abc import Awaitable, Callable
from typing import Annotated

import redis.asyncio as aioredis
from fastapi import Depends

from src.fc_common.errors import RateLimitError
from src.fc_common.redis_client import get_redis
from src.fc_gateway.auth.dependencies import get_current_user
from src.fc_gateway.user.db_models import UserModel

logger = logging.getLogger(__name__)


class RateLimiter:
    def __init__(
        self,
        group: str,
        limit: int,
        window_seconds: int = 60,
        redis_factory: Callable[[], Awaitable[aioredis.Redis]] = get_redis,
    ) -> None:
        self.group = group
        self.limit = limit
        self.window_seconds = window_seconds
        self._redis_factory = redis_factory

    def key_for(self, user_id: str, now: float | None = None) -> str:
        ts = time.time() if now is None else now
        window_start = int(ts // self.window_seconds) * self.window_seconds
        return f"ratelimit:{self.group}:{user_id}:{window_start}"

    async def hit(self, user_id: str) -> None:
        """Count one request; raise RateLimitError past the limit."""
        redis = await self._redis_factory()
        key = self.key_for(user_id)
        count = await redis.incr(key)
        if count == 1:
            await redis.expire(key, self.window_seconds)
        if count > self.limit:
            logger.info("rate limit hit: group=%s user=%s count=%d", self.group, user_id, count)
            raise RateLimitError()

    async def __call__(
        self, current_user: Annotated[UserModel, Depends(get_current_user)]
    ) -> None:
        await self.hit(str(current_user.id))
