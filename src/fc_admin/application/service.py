"""Admin application service: overrides on a market session plus audit reads.

Every override is executed by the AuctionEngine (so it is serialised with
client actions) and audited inside the same transaction.
"""

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.fc_admin.infrastructure.audit import list_audit
from src.fc_auction.application.service import get_auction_engine
from src.fc_auction.domain.models import MarketSession
from src.fc_auction.engine.engine import AuctionEngine
from src.fc_common.enums import MemberRole
from src.fc_common.errors import ForbiddenError, SessionNotFoundError

_GET_SESSION_LEAGUE_SQL = text("SELECT league_id FROM market_sessions WHERE id = :session_id")
_IS_LEAGUE_ADMIN_SQL = text("""
    SELECT 1 FROM league_members
    WHERE league_id = :league_id AND user_id = CAST(:user_id AS UUID)
      AND role = :role AND status = 'ACTIVE'
""")
_LIST_FROZEN_SQL = text("""
    SELECT id, phase, frozen_reason, updated_at
    FROM market_sessions
    WHERE league_id = :league_id AND frozen_reason IS NOT NULL
    ORDER BY updated_at DESC
""")


def _summary(session: MarketSession) -> dict[str, Any]:
    lane = session.active_lane() if session.active_variant else None
    return {
        "session_id": session.id,
        "phase": session.phase,
        "current_role": session.current_role,
        "auction_timer_seconds": session.auction_timer_seconds,
        "frozen_reason": session.frozen_reason,
        "stage": lane.stage if lane else None,
        "turn_order": list(lane.turn_order) if lane else [],
        "current_turn_index": lane.current_turn_index if lane else None,
    }


class AdminService:
    def __init__(self, engine: AuctionEngine | None = None) -> None:
        self._engine_override = engine

    @property
    def engine(self) -> AuctionEngine:
        return self._engine_override or get_auction_engine()

    async def force_all_ready(self, db: AsyncSession, session_id: str, user_id: str) -> dict[str, Any]:
        return _summary(await self.engine.force_all_ready(db, session_id, user_id))

    async def force_acknowledge_all(
        self, db: AsyncSession, session_id: str, user_id: str
    ) -> dict[str, Any]:
        return _summary(await self.engine.force_acknowledge_all(db, session_id, user_id))

    async def close_auction(self, db: AsyncSession, session_id: str, user_id: str) -> dict[str, Any]:
        return _summary(await self.engine.close_auction(db, session_id, user_id))

    async def pause(self, db: AsyncSession, session_id: str, user_id: str) -> dict[str, Any]:
        return _summary(await self.engine.pause_auction(db, session_id, user_id))

    async def resume(self, db: AsyncSession, session_id: str, user_id: str) -> dict[str, Any]:
        return _summary(await self.engine.resume_auction(db, session_id, user_id))

    async def cancel_last_bid(
        self, db: AsyncSession, session_id: str, user_id: str
    ) -> dict[str, Any]:
        return _summary(await self.engine.cancel_last_bid(db, session_id, user_id))

    async def set_turn_order(
        self, db: AsyncSession, session_id: str, user_id: str, member_ids: list[str] | None
    ) -> dict[str, Any]:
        return _summary(await self.engine.set_turn_order(db, session_id, user_id, member_ids))

    async def set_timer(
        self, db: AsyncSession, session_id: str, user_id: str, seconds: int
    ) -> dict[str, Any]:
        return _summary(await self.engine.set_timer(db, session_id, user_id, seconds))

    async def advance_phase(
        self, db: AsyncSession, session_id: str, user_id: str, phase: str
    ) -> dict[str, Any]:
        return _summary(await self.engine.advance_phase(db, session_id, user_id, phase))

    async def repair(
        self,
        db: AsyncSession,
        session_id: str,
        user_id: str,
        turn_index: int | None,
        reset_stage: bool,
    ) -> dict[str, Any]:
        session = await self.engine.repair_session(
            db, session_id, user_id, turn_index=turn_index, reset_stage=reset_stage
        )
        return _summary(session)

    async def _require_league_admin(
        self, db: AsyncSession, session_id: str, user_id: str
    ) -> str:
        row = (await db.execute(_GET_SESSION_LEAGUE_SQL, {"session_id": session_id})).fetchone()
        if row is None:
            raise SessionNotFoundError(session_id)
        is_admin = (
            await db.execute(
                _IS_LEAGUE_ADMIN_SQL,
                {"league_id": row.league_id, "user_id": user_id, "role": MemberRole.ADMIN.value},
            )
        ).fetchone()
        if is_admin is None:
            raise ForbiddenError("League admin only")
        return str(row.league_id)

    async def audit_log(
        self, db: AsyncSession, session_id: str, user_id: str, limit: int
    ) -> list[dict[str, Any]]:
        league_id = await self._require_league_admin(db, session_id, user_id)
        return await list_audit(db, league_id, entity_id=session_id, limit=limit)

    async def frozen_sessions(
        self, db: AsyncSession, session_id: str, user_id: str
    ) -> list[dict[str, Any]]:
        """Frozen sessions of the same league, for the repair screen."""
        league_id = await self._require_league_admin(db, session_id, user_id)
        rows = (await db.execute(_LIST_FROZEN_SQL, {"league_id": league_id})).fetchall()
        return [
            {
                "session_id": r.id,
                "phase": r.phase,
                "frozen_reason": r.frozen_reason,
                "updated_at": r.updated_at.isoformat(),
            }
            for r in rows
        ]
