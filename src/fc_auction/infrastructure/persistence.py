"""SessionRepository: concrete implementation of SessionRepositoryProtocol.

market_sessions keeps one JSONB column per auction lane. Lanes are typed
dataclasses; every load and save goes through a pydantic TypeAdapter, and
a lane that fails validation or breaks a structural invariant makes the
whole session unusable (SessionCorruptedError) until an admin repairs it.

timer_expires_at is denormalised from the live lane so the expiry sweeper
can find lapsed auctions with an index scan.
"""

import json
import logging
from datetime import datetime
from typing import Any

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.fc_auction.domain.models import Auction, AuctionLane, MarketSession
from src.fc_common.enums import AuctionVariant
from src.fc_common.errors import SessionCorruptedError

logger = logging.getLogger(__name__)

_LANE_ADAPTER: TypeAdapter[AuctionLane] = TypeAdapter(AuctionLane)
_ROLE_SEQUENCE_ADAPTER: TypeAdapter[list[str]] = TypeAdapter(list[str])

_LANE_COLUMNS: dict[str, str] = {
    AuctionVariant.FIRST_MARKET.value: "first_market_lane",
    AuctionVariant.RUBATA.value: "rubata_lane",
    AuctionVariant.SVINCOLATI.value: "svincolati_lane",
}

# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

_SELECT_SESSION = """
    SELECT id, league_id, phase, current_role, role_sequence,
           auction_timer_seconds, auction_mode, base_price_policy,
           frozen_reason, first_market_lane, rubata_lane, svincolati_lane,
           created_at, updated_at
    FROM market_sessions
    WHERE id = :session_id
"""

_GET_SESSION_SQL = text(_SELECT_SESSION)
_GET_SESSION_FOR_UPDATE_SQL = text(_SELECT_SESSION + " FOR UPDATE")

_UPDATE_SESSION_SQL = text("""
    UPDATE market_sessions
    SET phase = :phase,
        current_role = :current_role,
        role_sequence = CAST(:role_sequence AS JSONB),
        auction_timer_seconds = :auction_timer_seconds,
        auction_mode = :auction_mode,
        base_price_policy = :base_price_policy,
        frozen_reason = :frozen_reason,
        first_market_lane = CAST(:first_market_lane AS JSONB),
        rubata_lane = CAST(:rubata_lane AS JSONB),
        svincolati_lane = CAST(:svincolati_lane AS JSONB),
        timer_expires_at = :timer_expires_at
    WHERE id = :id
""")

_FREEZE_SQL = text("""
    UPDATE market_sessions
    SET frozen_reason = :reason, timer_expires_at = NULL
    WHERE id = :session_id
""")

_LIST_EXPIRED_SQL = text("""
    SELECT id
    FROM market_sessions
    WHERE frozen_reason IS NULL
      AND timer_expires_at IS NOT NULL
      AND timer_expires_at <= :now
    ORDER BY timer_expires_at ASC
    LIMIT :limit
""")

_INSERT_AUCTION_SQL = text("""
    INSERT INTO auctions
        (id, session_id, league_id, variant, player_id, nominator_member_id,
         seller_member_id, roster_entry_id, base_price, final_price,
         winner_member_id, outcome, closed_by, started_at, ended_at)
    VALUES
        (:id, :session_id, :league_id, :variant, :player_id, :nominator_id,
         :seller_id, :roster_entry_id, :base_price, :final_price,
         :winner_id, :outcome, :closed_by, :started_at, :ended_at)
""")

_INSERT_BID_SQL = text("""
    INSERT INTO auction_bids (id, auction_id, member_id, amount, placed_at)
    VALUES (:id, :auction_id, :member_id, :amount, :placed_at)
""")

# ---------------------------------------------------------------------------
# Lane codec
# ---------------------------------------------------------------------------


def _json_value(raw: Any) -> Any:
    # asyncpg hands JSONB back as text when the column type is not declared
    return json.loads(raw) if isinstance(raw, str) else raw


def decode_lane(session_id: str, variant: str, raw: Any) -> AuctionLane:
    if raw is None:
        return AuctionLane(variant=variant)
    try:
        lane = _LANE_ADAPTER.validate_python(_json_value(raw))
    except (ValidationError, ValueError) as exc:
        raise SessionCorruptedError(session_id, f"{variant} lane unreadable: {exc}") from exc
    if lane.variant != variant:
        raise SessionCorruptedError(
            session_id, f"{variant} column holds a {lane.variant} lane"
        )
    problem = lane.consistency_error()
    if problem is not None:
        raise SessionCorruptedError(session_id, problem)
    return lane


def encode_lane(session_id: str, lane: AuctionLane) -> str:
    problem = lane.consistency_error()
    if problem is not None:
        raise SessionCorruptedError(session_id, problem)
    return json.dumps(_LANE_ADAPTER.dump_python(lane, mode="json"))


def _row_to_session(row: Any, lenient: bool = False) -> MarketSession:
    lanes: dict[str, AuctionLane] = {}
    for variant, column in _LANE_COLUMNS.items():
        raw = getattr(row, column)
        try:
            lanes[variant] = decode_lane(row.id, variant, raw)
        except SessionCorruptedError as exc:
            if not lenient:
                raise
            logger.warning("session %s: resetting %s lane: %s", row.id, variant, exc.message)
            lanes[variant] = AuctionLane(variant=variant)
    try:
        role_sequence = _ROLE_SEQUENCE_ADAPTER.validate_python(_json_value(row.role_sequence))
    except (ValidationError, ValueError) as exc:
        raise SessionCorruptedError(row.id, f"role sequence unreadable: {exc}") from exc

    return MarketSession(
        id=row.id,
        league_id=row.league_id,
        phase=row.phase,
        current_role=row.current_role,
        role_sequence=role_sequence,
        auction_timer_seconds=row.auction_timer_seconds,
        auction_mode=row.auction_mode,
        base_price_policy=row.base_price_policy,
        first_market=lanes[AuctionVariant.FIRST_MARKET.value],
        rubata=lanes[AuctionVariant.RUBATA.value],
        svincolati=lanes[AuctionVariant.SVINCOLATI.value],
        frozen_reason=row.frozen_reason,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def live_timer_expiry(session: MarketSession) -> datetime | None:
    if session.active_variant is None:
        return None
    auction = session.active_lane().auction
    return auction.timer_expires_at if auction is not None else None


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SessionRepository:
    async def get(
        self,
        db: AsyncSession,
        session_id: str,
        for_update: bool = False,
        lenient: bool = False,
    ) -> MarketSession | None:
        sql = _GET_SESSION_FOR_UPDATE_SQL if for_update else _GET_SESSION_SQL
        row = (await db.execute(sql, {"session_id": session_id})).fetchone()
        return _row_to_session(row, lenient=lenient) if row else None

    async def save(self, db: AsyncSession, session: MarketSession) -> None:
        await db.execute(
            _UPDATE_SESSION_SQL,
            {
                "id": session.id,
                "phase": session.phase,
                "current_role": session.current_role,
                "role_sequence": json.dumps(session.role_sequence),
                "auction_timer_seconds": session.auction_timer_seconds,
                "auction_mode": session.auction_mode,
                "base_price_policy": session.base_price_policy,
                "frozen_reason": session.frozen_reason,
                "first_market_lane": encode_lane(session.id, session.first_market),
                "rubata_lane": encode_lane(session.id, session.rubata),
                "svincolati_lane": encode_lane(session.id, session.svincolati),
                "timer_expires_at": live_timer_expiry(session),
            },
        )

    async def freeze(self, db: AsyncSession, session_id: str, reason: str) -> None:
        await db.execute(_FREEZE_SQL, {"session_id": session_id, "reason": reason[:500]})

    async def record_auction(
        self,
        db: AsyncSession,
        session: MarketSession,
        auction: Auction,
        outcome: str,
        ended_at: datetime,
        closed_by: str,
    ) -> None:
        winner = auction.winning_bid
        await db.execute(
            _INSERT_AUCTION_SQL,
            {
                "id": auction.id,
                "session_id": session.id,
                "league_id": session.league_id,
                "variant": auction.variant,
                "player_id": auction.player.id,
                "nominator_id": auction.nominator_id,
                "seller_id": auction.seller_id,
                "roster_entry_id": auction.roster_entry_id,
                "base_price": auction.base_price,
                "final_price": winner.amount if winner else None,
                "winner_id": winner.bidder.member_id if winner else None,
                "outcome": outcome,
                "closed_by": closed_by,
                "started_at": auction.started_at,
                "ended_at": ended_at,
            },
        )
        for bid in reversed(auction.bids):
            await db.execute(
                _INSERT_BID_SQL,
                {
                    "id": bid.id,
                    "auction_id": auction.id,
                    "member_id": bid.bidder.member_id,
                    "amount": bid.amount,
                    "placed_at": bid.placed_at,
                },
            )

    async def list_expired(
        self, db: AsyncSession, now: datetime, limit: int = 100
    ) -> list[str]:
        rows = (await db.execute(_LIST_EXPIRED_SQL, {"now": now, "limit": limit})).fetchall()
        return [r.id for r in rows]
