"""AuctionApplicationService: composition layer between routers and the engine.

Every client action goes through the process-wide AuctionEngine (which owns
the per-session locks) and answers with the caller's fresh view of the room.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from src.fc_auction.application.schemas import HeartbeatResponse, SessionStateResponse
from src.fc_auction.domain.models import AuctionLane, MarketSession, ReadyStatus
from src.fc_auction.engine.engine import AuctionEngine
from src.fc_common.enums import AuctionStage
from src.fc_common.errors import NotLeagueMemberError
from src.fc_league.domain.models import Member
from src.fc_league.domain.repository import LeagueRepositoryProtocol
from src.fc_league.infrastructure.persistence import LeagueRepository
from src.fc_realtime.presence import PresenceTracker, get_presence_tracker

_engine: AuctionEngine | None = None


def get_auction_engine() -> AuctionEngine:
    global _engine  # noqa: PLW0603
    if _engine is None:
        _engine = AuctionEngine()
    return _engine


def ready_status(lane: AuctionLane, members: list[Member], viewer_id: str) -> ReadyStatus | None:
    """Ready-check view; None unless a nomination is on the table."""
    nomination = lane.nomination
    if nomination is None or lane.stage not in (
        AuctionStage.NOMINATION_PENDING.value,
        AuctionStage.READY_CHECK.value,
    ):
        return None
    by_id = {m.id: m for m in members}
    targets = [m.id for m in members if m.id != nomination.nominator_id]
    ready = [m for m in targets if m in lane.ready_members]
    nominator = by_id.get(nomination.nominator_id)
    return ReadyStatus(
        player=nomination.player,
        nominator_id=nomination.nominator_id,
        nominator_username=nominator.username if nominator else "",
        user_is_nominator=viewer_id == nomination.nominator_id,
        nominator_confirmed=nomination.nominator_confirmed,
        ready_members=ready,
        pending_members=[m for m in targets if m not in ready],
        ready_count=len(ready),
        total_members=len(targets),
        user_is_ready=viewer_id in ready or viewer_id == nomination.nominator_id,
    )


class AuctionApplicationService:
    def __init__(
        self,
        engine: AuctionEngine | None = None,
        league_repo: LeagueRepositoryProtocol | None = None,
        presence: PresenceTracker | None = None,
    ) -> None:
        self._engine_override = engine
        self._league: LeagueRepositoryProtocol = league_repo or LeagueRepository()
        self._presence = presence or get_presence_tracker()

    @property
    def engine(self) -> AuctionEngine:
        return self._engine_override or get_auction_engine()

    async def _view(
        self, db: AsyncSession, session: MarketSession, user_id: str
    ) -> SessionStateResponse:
        members = await self._league.list_active_members(db, session.league_id)
        viewer = next((m for m in members if m.user_id == user_id), None)
        if viewer is None:
            raise NotLeagueMemberError(session.league_id)
        return await self._build(db, session, viewer, members)

    async def _build(
        self,
        db: AsyncSession,
        session: MarketSession,
        viewer: Member,
        members: list[Member],
    ) -> SessionStateResponse:
        slots = await self._league.get_role_slots(db, viewer.id)
        lane = session.active_lane() if session.active_variant else None
        ready = ready_status(lane, members, viewer.id) if lane else None
        connected = await self._presence.connected(session.id, [m.id for m in members])
        return SessionStateResponse.build(
            session, viewer, members, slots, ready, self.engine.timer.now(), connected
        )

    async def get_state(
        self, db: AsyncSession, session_id: str, user_id: str
    ) -> SessionStateResponse:
        session, viewer, members = await self.engine.load_view(db, session_id, user_id)
        return await self._build(db, session, viewer, members)

    async def heartbeat(
        self, db: AsyncSession, session_id: str, user_id: str
    ) -> HeartbeatResponse:
        member = await self.engine.member_for(db, session_id, user_id)
        stored = await self._presence.touch(session_id, member.id)
        return HeartbeatResponse(
            member_id=member.id, connected=stored, ttl_seconds=self._presence.ttl_seconds
        )

    async def nominate(
        self,
        db: AsyncSession,
        session_id: str,
        user_id: str,
        player_id: str | None,
        roster_entry_id: str | None,
    ) -> SessionStateResponse:
        session = await self.engine.nominate(
            db, session_id, user_id, player_id=player_id, roster_entry_id=roster_entry_id
        )
        return await self._view(db, session, user_id)

    async def confirm_nomination(
        self, db: AsyncSession, session_id: str, user_id: str
    ) -> SessionStateResponse:
        session = await self.engine.confirm_nomination(db, session_id, user_id)
        return await self._view(db, session, user_id)

    async def cancel_nomination(
        self, db: AsyncSession, session_id: str, user_id: str
    ) -> SessionStateResponse:
        session = await self.engine.cancel_nomination(db, session_id, user_id)
        return await self._view(db, session, user_id)

    async def mark_ready(
        self, db: AsyncSession, session_id: str, user_id: str
    ) -> SessionStateResponse:
        session = await self.engine.mark_ready(db, session_id, user_id)
        return await self._view(db, session, user_id)

    async def place_bid(
        self, db: AsyncSession, session_id: str, user_id: str, amount: int
    ) -> SessionStateResponse:
        session = await self.engine.place_bid(db, session_id, user_id, amount)
        return await self._view(db, session, user_id)

    async def acknowledge(
        self, db: AsyncSession, session_id: str, user_id: str
    ) -> SessionStateResponse:
        session = await self.engine.acknowledge(db, session_id, user_id)
        return await self._view(db, session, user_id)

    async def pass_turn(
        self, db: AsyncSession, session_id: str, user_id: str
    ) -> SessionStateResponse:
        session = await self.engine.pass_turn(db, session_id, user_id)
        return await self._view(db, session, user_id)

    async def declare_finished(
        self, db: AsyncSession, session_id: str, user_id: str
    ) -> SessionStateResponse:
        session = await self.engine.declare_finished(db, session_id, user_id)
        return await self._view(db, session, user_id)

    async def undo_finished(
        self, db: AsyncSession, session_id: str, user_id: str
    ) -> SessionStateResponse:
        session = await self.engine.undo_finished(db, session_id, user_id)
        return await self._view(db, session, user_id)
