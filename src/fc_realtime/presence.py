"""Room presence from client heartbeats.

Each heartbeat refreshes ``presence:{session_id}:{member_id}`` with a TTL;
a member is connected while the key exists. Presence is advisory: Redis
trouble degrades to "nobody connected" instead of failing the request.
"""

import logging
from collections.abc import Awaitable, Callable, Sequence

import redis.asyncio as aioredis

from config.settings import settings
from src.fc_common.redis_client import get_redis

logger = logging.getLogger(__name__)


class PresenceTracker:
    def __init__(
        self,
        ttl_seconds: int | None = None,
        redis_factory: Callable[[], Awaitable[aioredis.Redis]] = get_redis,
    ) -> None:
        self.ttl_seconds = ttl_seconds or settings.PRESENCE_TTL_SECONDS
        self._redis_factory = redis_factory

    @staticmethod
    def key_for(session_id: str, member_id: str) -> str:
        return f"presence:{session_id}:{member_id}"

    async def touch(self, session_id: str, member_id: str) -> bool:
        key = self.key_for(session_id, member_id)
        try:
            redis = await self._redis_factory()
            await redis.set(key, "1", ex=self.ttl_seconds)
        except Exception:
            logger.warning("heartbeat not stored: %s", key, exc_info=True)
            return False
        return True

    async def connected(self, session_id: str, member_ids: Sequence[str]) -> set[str]:
        """Members of ``member_ids`` with a live heartbeat."""
        if not member_ids:
            return set()
        keys = [self.key_for(session_id, m) for m in member_ids]
        try:
            redis = await self._redis_factory()
            values = await redis.mget(keys)
        except Exception:
            logger.warning("presence lookup failed for session %s", session_id, exc_info=True)
            return set()
        return {m for m, value in zip(member_ids, values) if value is not None}


_tracker: PresenceTracker | None = None


def get_presence_tracker() -> PresenceTracker:
    global _tracker  # noqa: PLW0603
    if _tracker is None:
        _tracker = PresenceTracker()
    return _tracker
