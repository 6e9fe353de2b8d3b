"""Pydantic request/response schemas for fc_auction.

Responses are built from domain dataclasses via ``from_domain``; all
timestamps are ISO-8601 UTC strings and every state snapshot carries the
server time so clients can reconcile their countdown.
"""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from src.fc_auction.domain.models import (
    Auction,
    AuctionLane,
    Bid,
    MarketSession,
    PendingAcknowledgment,
    PlayerRef,
    ReadyStatus,
)
from src.fc_auction.domain.timer import remaining
from src.fc_common.datetime_utils import isoformat_or_none
from src.fc_common.enums import SessionPhase
from src.fc_league.domain.models import Member, RoleSlot

# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class NominateRequest(BaseModel):
    """First market / svincolati nominate a player; rubata a roster entry."""

    player_id: str | None = None
    roster_entry_id: str | None = None

    @model_validator(mode="after")
    def exactly_one_target(self) -> "NominateRequest":
        if (self.player_id is None) == (self.roster_entry_id is None):
            raise ValueError("Provide exactly one of player_id or roster_entry_id")
        return self


class BidRequest(BaseModel):
    amount: int = Field(..., gt=0)


class TurnOrderRequest(BaseModel):
    # omitted: draw a random order once
    member_ids: list[str] | None = None


class TimerRequest(BaseModel):
    seconds: int = Field(..., gt=0)


class PhaseRequest(BaseModel):
    phase: SessionPhase


class RepairRequest(BaseModel):
    turn_index: int | None = Field(None, ge=0)
    reset_stage: bool = False


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class PlayerOut(BaseModel):
    id: str
    name: str
    team: str
    position: str
    quotation: int
    age: int | None

    @classmethod
    def from_domain(cls, p: PlayerRef) -> "PlayerOut":
        return cls(
            id=p.id, name=p.name, team=p.team, position=p.position,
            quotation=p.quotation, age=p.age,
        )


class BidOut(BaseModel):
    id: str
    member_id: str
    username: str
    team_name: str | None
    amount: int
    placed_at: str

    @classmethod
    def from_domain(cls, b: Bid) -> "BidOut":
        return cls(
            id=b.id,
            member_id=b.bidder.member_id,
            username=b.bidder.username,
            team_name=b.bidder.team_name,
            amount=b.amount,
            placed_at=b.placed_at.isoformat(),
        )


class AuctionOut(BaseModel):
    id: str
    variant: str
    player: PlayerOut
    nominator_id: str
    seller_id: str | None
    base_price: int
    current_price: int
    bids: list[BidOut]
    timer_seconds: int
    timer_expires_at: str | None
    remaining_seconds: int
    paused: bool

    @classmethod
    def from_domain(cls, a: Auction, server_time: datetime) -> "AuctionOut":
        if a.timer_expires_at is not None:
            left = remaining(a.timer_expires_at, server_time)
        else:
            left = a.paused_remaining_seconds or 0
        return cls(
            id=a.id,
            variant=a.variant,
            player=PlayerOut.from_domain(a.player),
            nominator_id=a.nominator_id,
            seller_id=a.seller_id,
            base_price=a.base_price,
            current_price=a.current_price,
            bids=[BidOut.from_domain(b) for b in a.bids],
            timer_seconds=a.timer_seconds,
            timer_expires_at=isoformat_or_none(a.timer_expires_at),
            remaining_seconds=left,
            paused=a.is_paused,
        )


class ReadyStatusOut(BaseModel):
    player: PlayerOut
    nominator_id: str
    nominator_username: str
    user_is_nominator: bool
    nominator_confirmed: bool
    ready_members: list[str]
    pending_members: list[str]
    ready_count: int
    total_members: int
    user_is_ready: bool

    @classmethod
    def from_domain(cls, r: ReadyStatus) -> "ReadyStatusOut":
        return cls(
            player=PlayerOut.from_domain(r.player),
            nominator_id=r.nominator_id,
            nominator_username=r.nominator_username,
            user_is_nominator=r.user_is_nominator,
            nominator_confirmed=r.nominator_confirmed,
            ready_members=r.ready_members,
            pending_members=r.pending_members,
            ready_count=r.ready_count,
            total_members=r.total_members,
            user_is_ready=r.user_is_ready,
        )


class PendingAcknowledgmentOut(BaseModel):
    auction_id: str
    player: PlayerOut
    winner_member_id: str | None
    winner_username: str | None
    final_price: int | None
    seller_id: str | None
    acknowledged_members: list[str]
    pending_members: list[str]
    total_members: int
    total_acknowledged: int
    user_acknowledged: bool

    @classmethod
    def from_domain(
        cls, ack: PendingAcknowledgment, viewer_id: str
    ) -> "PendingAcknowledgmentOut":
        return cls(
            auction_id=ack.auction_id,
            player=PlayerOut.from_domain(ack.player),
            winner_member_id=ack.winner.member_id if ack.winner else None,
            winner_username=ack.winner.username if ack.winner else None,
            final_price=ack.final_price,
            seller_id=ack.seller_id,
            acknowledged_members=list(ack.acknowledged_members),
            pending_members=ack.pending_members,
            total_members=len(ack.members),
            total_acknowledged=len(ack.acknowledged_members),
            user_acknowledged=viewer_id in ack.acknowledged_members,
        )


class LaneOut(BaseModel):
    variant: str
    stage: str
    turn_order: list[str]
    current_turn_index: int
    current_member_id: str | None
    is_my_turn: bool
    completed: bool
    passed_members: list[str]
    finished_members: list[str]

    @classmethod
    def from_domain(cls, lane: AuctionLane, viewer_id: str) -> "LaneOut":
        return cls(
            variant=lane.variant,
            stage=lane.stage,
            turn_order=list(lane.turn_order),
            current_turn_index=lane.current_turn_index,
            current_member_id=lane.current_member_id,
            is_my_turn=lane.current_member_id == viewer_id,
            completed=lane.completed,
            passed_members=list(lane.passed_members),
            finished_members=list(lane.finished_members),
        )


class MemberOut(BaseModel):
    id: str
    username: str
    team_name: str | None
    role: str
    current_budget: int
    is_connected: bool = False

    @classmethod
    def from_domain(cls, m: Member, is_connected: bool = False) -> "MemberOut":
        return cls(
            id=m.id, username=m.username, team_name=m.team_name,
            role=m.role, current_budget=m.current_budget, is_connected=is_connected,
        )


class RoleSlotOut(BaseModel):
    position: str
    filled: int
    total: int

    @classmethod
    def from_domain(cls, s: RoleSlot) -> "RoleSlotOut":
        return cls(position=s.position, filled=s.filled, total=s.total)


class SessionStateResponse(BaseModel):
    session_id: str
    league_id: str
    phase: str
    current_role: str | None
    role_sequence: list[str]
    auction_timer_seconds: int
    auction_mode: str
    frozen_reason: str | None
    lane: LaneOut | None
    auction: AuctionOut | None
    ready_status: ReadyStatusOut | None
    pending_acknowledgment: PendingAcknowledgmentOut | None
    members: list[MemberOut]
    my_member_id: str
    my_budget: int
    my_slots: list[RoleSlotOut]
    is_admin: bool
    server_time: str

    @classmethod
    def build(
        cls,
        session: MarketSession,
        viewer: Member,
        members: list[Member],
        slots: dict[str, RoleSlot],
        ready: ReadyStatus | None,
        server_time: datetime,
        connected: set[str] | None = None,
    ) -> "SessionStateResponse":
        online = connected or set()
        lane = session.active_lane() if session.active_variant else None
        return cls(
            session_id=session.id,
            league_id=session.league_id,
            phase=session.phase,
            current_role=session.current_role,
            role_sequence=list(session.role_sequence),
            auction_timer_seconds=session.auction_timer_seconds,
            auction_mode=session.auction_mode,
            frozen_reason=session.frozen_reason,
            lane=LaneOut.from_domain(lane, viewer.id) if lane else None,
            auction=(
                AuctionOut.from_domain(lane.auction, server_time)
                if lane and lane.auction
                else None
            ),
            ready_status=ReadyStatusOut.from_domain(ready) if ready else None,
            pending_acknowledgment=(
                PendingAcknowledgmentOut.from_domain(lane.pending_ack, viewer.id)
                if lane and lane.pending_ack
                else None
            ),
            members=[MemberOut.from_domain(m, m.id in online) for m in members],
            my_member_id=viewer.id,
            my_budget=viewer.current_budget,
            my_slots=[RoleSlotOut.from_domain(s) for s in slots.values()],
            is_admin=viewer.is_admin,
            server_time=server_time.isoformat(),
        )


class HeartbeatResponse(BaseModel):
    member_id: str
    connected: bool
    ttl_seconds: int
