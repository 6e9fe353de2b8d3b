"""Background expiry sweeper.

Expiry is also resolved lazily by the next action on a session; the
sweeper makes sure a room nobody touches still closes its auction on
time. Each lapsed session is resolved in its own DB session through the
engine, so it takes the same lock as client actions.
"""

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import settings
from src.fc_auction.engine.engine import AuctionEngine
from src.fc_auction.infrastructure.persistence import SessionRepository
from src.fc_common.errors import AppError

logger = logging.getLogger(__name__)

_task: asyncio.Task[None] | None = None


async def sweep_once(
    engine: AuctionEngine,
    session_factory: async_sessionmaker[AsyncSession],
    repo: SessionRepository | None = None,
) -> int:
    """Resolve every session whose timer has lapsed. Returns how many were resolved."""
    repo = repo or SessionRepository()
    async with session_factory() as db:
        expired = await repo.list_expired(db, engine.timer.now())
    resolved = 0
    for session_id in expired:
        try:
            async with session_factory() as db:
                await engine.resolve_expired(db, session_id)
            resolved += 1
        except AppError as exc:
            logger.warning("sweeper: session %s not resolved: %s", session_id, exc.message)
        except Exception:
            logger.exception("sweeper: session %s failed", session_id)
    if resolved:
        logger.info("sweeper resolved %d expired auction(s)", resolved)
    return resolved


async def sweeper_loop(
    engine: AuctionEngine,
    session_factory: async_sessionmaker[AsyncSession],
    interval: float | None = None,
) -> None:
    interval = interval or settings.EXPIRY_SWEEP_INTERVAL_SECONDS
    logger.info("expiry sweeper started (interval=%.1fs)", interval)
    while True:
        try:
            await sweep_once(engine, session_factory)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("expiry sweeper iteration failed")
        await asyncio.sleep(interval)


def start_sweeper(
    engine: AuctionEngine, session_factory: async_sessionmaker[AsyncSession]
) -> asyncio.Task[None]:
    global _task  # noqa: PLW0603
    if _task is None or _task.done():
        _task = asyncio.create_task(sweeper_loop(engine, session_factory))
    return _task


async def stop_sweeper() -> None:
    global _task  # noqa: PLW0603
    if _task is None:
        return
    _task.cancel()
    try:
        await _task
    except asyncio.CancelledError:
        pass
    _task = None
    logger.info("expiry sweeper stopped")
