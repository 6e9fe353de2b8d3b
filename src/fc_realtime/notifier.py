"""Realtime fan-out over Redis Pub/Sub.

Every state change of a market session is published on channel
``auction-{session_id}`` as {"event": name, "data": payload}. Payloads
carry ``serverTimestamp`` (epoch ms) so clients can correct clock skew
before rendering the countdown.

Publishing happens after the transaction commits. A failed publish is
logged and reported as False; it never fails the action that caused it.
"""

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import redis.asyncio as aioredis

from config.settings import settings
from src.fc_common.datetime_utils import epoch_ms, utc_now
from src.fc_common.redis_client import get_redis

logger = logging.getLogger(__name__)


class AuctionEvents:
    NOMINATION_PENDING = "nomination-pending"
    NOMINATION_CONFIRMED = "nomination-confirmed"
    NOMINATION_CANCELLED = "nomination-cancelled"
    MEMBER_READY = "member-ready"
    AUCTION_STARTED = "auction-started"
    BID_PLACED = "bid-placed"
    BID_CANCELLED = "bid-cancelled"
    AUCTION_CLOSED = "auction-closed"
    AUCTION_PAUSED = "auction-paused"
    AUCTION_RESUMED = "auction-resumed"
    ACKNOWLEDGMENT_UPDATED = "acknowledgment-updated"
    TURN_ADVANCED = "turn-advanced"
    ROLE_ADVANCED = "role-advanced"
    PHASE_CHANGED = "phase-changed"
    TIMER_UPDATED = "timer-updated"
    SVINCOLATI_STATE_CHANGED = "svincolati-state-changed"
    SESSION_FROZEN = "session-frozen"
    SESSION_REPAIRED = "session-repaired"


def channel_for(session_id: str) -> str:
    return f"{settings.REALTIME_CHANNEL_PREFIX}{session_id}"


def build_message(event: str, payload: dict[str, Any]) -> str:
    data = {**payload, "serverTimestamp": epoch_ms(utc_now())}
    return json.dumps({"event": event, "data": data}, default=str)


class Notifier:
    def __init__(
        self,
        redis_factory: Callable[[], Awaitable[aioredis.Redis]] = get_redis,
    ) -> None:
        self._redis_factory = redis_factory

    async def broadcast(self, session_id: str, event: str, payload: dict[str, Any]) -> bool:
        channel = channel_for(session_id)
        try:
            redis = await self._redis_factory()
            receivers = await redis.publish(channel, build_message(event, payload))
        except Exception:
            logger.warning(
                "broadcast failed: channel=%s event=%s", channel, event, exc_info=True
            )
            return False
        logger.debug("broadcast %s on %s (%s receivers)", event, channel, receivers)
        return True


_notifier: Notifier | None = None


def get_notifier() -> Notifier:
    global _notifier  # noqa: PLW0603
    if _notifier is None:
        _notifier = Notifier()
    return _notifier
