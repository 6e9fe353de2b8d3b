"""Session store Protocol.

Unit tests inject an in-memory fake; infrastructure provides PostgreSQL.
"""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.fc_auction.domain.models import Auction, MarketSession


class SessionRepositoryProtocol(Protocol):
    async def get(
        self,
        db: AsyncSession,
        session_id: str,
        for_update: bool = False,
        lenient: bool = False,
    ) -> MarketSession | None:
        """Load and validate a session.

        Raises SessionCorruptedError when stored state fails validation,
        unless ``lenient`` is set, in which case broken lanes are reset.
        """
        ...

    async def save(self, db: AsyncSession, session: MarketSession) -> None: ...

    async def freeze(self, db: AsyncSession, session_id: str, reason: str) -> None: ...

    async def record_auction(
        self,
        db: AsyncSession,
        session: MarketSession,
        auction: Auction,
        outcome: str,
        ended_at: datetime,
        closed_by: str,
    ) -> None: ...

    async def list_expired(
        self, db: AsyncSession, now: datetime, limit: int = 100
    ) -> list[str]: ...
