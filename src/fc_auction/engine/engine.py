"""AuctionEngine: serialised state machine for every auction room.

IDLE → NOMINATION_PENDING → READY_CHECK → BIDDING → (RESOLUTION) →
ACKNOWLEDGMENT → IDLE, shared by first market, rubata and svincolati;
market-specific decisions are delegated to fc_auction.domain.rules.

Every mutation of a session runs under a per-session asyncio.Lock (one
process) and SELECT ... FOR UPDATE on the session row (many processes).
Checks read state loaded inside the lock, commit is the last step before
the lock is released, and notifications are published after release.

Rejected actions leave no trace. A fatal inconsistency rolls back, marks
the session frozen, logs CRITICAL and re-raises; a frozen session rejects
every mutation until repair_session.
"""

import asyncio
import functools
import logging
import weakref
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.fc_admin.infrastructure.audit import write_audit
from src.fc_auction.domain import turns
from src.fc_auction.domain.models import (
    Auction,
    AuctionEvent,
    AuctionLane,
    Bid,
    Bidder,
    MarketSession,
    PendingAcknowledgment,
)
from src.fc_auction.domain.repository import SessionRepositoryProtocol
from src.fc_auction.domain.rules import rules_for
from src.fc_auction.domain.timer import TimerAuthority
from src.fc_auction.infrastructure.persistence import SessionRepository
from src.fc_common.datetime_utils import isoformat_or_none
from src.fc_common.enums import (
    PHASE_ORDER,
    AuctionMode,
    AuctionOutcome,
    AuctionStage,
    AuctionVariant,
    SessionPhase,
)
from src.fc_common.errors import (
    AppError,
    BidTooLowError,
    ForbiddenError,
    InsufficientBudgetError,
    InvalidStateError,
    InvalidTurnOrderError,
    NotLeagueMemberError,
    NotYourTurnError,
    PhaseTransitionError,
    RoleSlotFullError,
    SessionCorruptedError,
    SessionFrozenError,
    SessionNotFoundError,
    TimerExpiredError,
    TimerOutOfRangeError,
)
from src.fc_common.id_generator import generate_id
from src.fc_league.domain.models import Member
from src.fc_league.domain.repository import LeagueRepositoryProtocol
from src.fc_league.infrastructure.persistence import LeagueRepository
from src.fc_realtime.notifier import AuctionEvents, Notifier, get_notifier

logger = logging.getLogger(__name__)

AuditWriter = Callable[..., Awaitable[None]]


@dataclass
class _Context:
    """Everything one serialised action sees and produces."""

    db: AsyncSession
    session: MarketSession
    actor: Member | None
    now: datetime
    events: list[AuctionEvent] = field(default_factory=list)
    members: list[Member] | None = None
    expiry_resolved: bool = False
    ready_check_settled: bool = False

    def emit(self, name: str, **payload: Any) -> None:
        self.events.append(AuctionEvent(name=name, payload=payload))

    def require_actor(self) -> Member:
        if self.actor is None:
            raise ForbiddenError("A league member is required for this action")
        return self.actor


Action = Callable[[_Context], Awaitable[None]]


def _player_payload(auction_or_ack: Any) -> dict[str, Any]:
    return asdict(auction_or_ack.player)


def _snapshot(session: MarketSession) -> dict[str, Any]:
    """Compact state summary for CRITICAL logs."""
    snap: dict[str, Any] = {
        "phase": session.phase,
        "current_role": session.current_role,
        "frozen_reason": session.frozen_reason,
    }
    for lane in session.lanes():
        snap[lane.variant] = {
            "stage": lane.stage,
            "turn_order": lane.turn_order,
            "current_turn_index": lane.current_turn_index,
            "auction": lane.auction.id if lane.auction else None,
            "completed": lane.completed,
        }
    return snap


class AuctionEngine:
    def __init__(
        self,
        repo: SessionRepositoryProtocol | None = None,
        league_repo: LeagueRepositoryProtocol | None = None,
        notifier: Notifier | None = None,
        timer: TimerAuthority | None = None,
        audit: AuditWriter | None = None,
    ) -> None:
        self._repo: SessionRepositoryProtocol = repo or SessionRepository()
        self._league: LeagueRepositoryProtocol = league_repo or LeagueRepository()
        self._notifier = notifier or get_notifier()
        self._timer = timer or TimerAuthority()
        self._audit: AuditWriter = audit or write_audit
        self._session_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @property
    def timer(self) -> TimerAuthority:
        return self._timer

    # ------------------------------------------------------------------
    # Serialisation core
    # ------------------------------------------------------------------

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        """Per-session lock, kept only while some action holds or awaits it."""
        lock = self._session_locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._session_locks[session_id] = lock
        return lock

    async def _execute(
        self,
        db: AsyncSession,
        session_id: str,
        user_id: str | None,
        action: Action,
        repair: bool = False,
    ) -> MarketSession:
        lock = self._lock_for(session_id)
        ctx: _Context | None = None
        deferred: AppError | None = None
        fatal: AppError | None = None

        async with lock:
            try:
                session = await self._repo.get(db, session_id, for_update=True, lenient=repair)
                if session is None:
                    raise SessionNotFoundError(session_id)
                if session.frozen_reason and not repair:
                    raise SessionFrozenError(session_id, session.frozen_reason)
                actor = await self._actor(db, session, user_id) if user_id else None
                ctx = _Context(db=db, session=session, actor=actor, now=self._timer.now())
                if not repair:
                    await self._resolve_if_expired(ctx)
                    await self._settle_ready_check(ctx)
                try:
                    await action(ctx)
                except AppError as exc:
                    # Keep a lazy transition even when the action itself is rejected
                    if exc.is_fatal or not (ctx.expiry_resolved or ctx.ready_check_settled):
                        raise
                    deferred = exc
                await self._repo.save(db, session)
                await db.commit()
            except AppError as exc:
                await db.rollback()
                if not exc.is_fatal:
                    logger.debug("session %s: rejected: %s", session_id, exc.message)
                    raise
                fatal = exc
                await self._freeze(db, session_id, exc, ctx)
            except Exception:
                await db.rollback()
                raise

        if fatal is not None:
            await self._notifier.broadcast(
                session_id, AuctionEvents.SESSION_FROZEN, {"reason": fatal.message}
            )
            raise fatal

        if ctx is None:
            raise SessionCorruptedError(session_id, "action finished without a loaded session")
        for event in ctx.events:
            await self._notifier.broadcast(session_id, event.name, event.payload)
        if deferred is not None:
            raise deferred
        return ctx.session

    async def _freeze(
        self, db: AsyncSession, session_id: str, exc: AppError, ctx: _Context | None
    ) -> None:
        try:
            await self._repo.freeze(db, session_id, exc.message)
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception("session %s: could not persist freeze", session_id)
        logger.critical(
            "session %s frozen: %s | snapshot=%s",
            session_id,
            exc.message,
            _snapshot(ctx.session) if ctx is not None else None,
        )

    async def _actor(self, db: AsyncSession, session: MarketSession, user_id: str) -> Member:
        member = await self._league.get_member_by_user(db, session.league_id, user_id)
        if member is None or not member.is_active:
            raise NotLeagueMemberError(session.league_id)
        return member

    async def _members(self, ctx: _Context) -> list[Member]:
        if ctx.members is None:
            ctx.members = await self._league.list_active_members(ctx.db, ctx.session.league_id)
        return ctx.members

    async def _open_lane(self, ctx: _Context) -> AuctionLane:
        """Active lane with a materialised, pruned turn order."""
        lane = ctx.session.active_lane()
        if lane.completed:
            raise InvalidStateError(f"{lane.variant} market is already completed")
        active_ids = [m.id for m in await self._members(ctx)]
        if not lane.turn_order:
            lane.turn_order, lane.turn_order_seed = turns.compute_initial_order(active_ids)
            lane.current_turn_index = 0
            logger.info(
                "session %s: %s turn order drawn (seed=%s): %s",
                ctx.session.id, lane.variant, lane.turn_order_seed, lane.turn_order,
            )
        else:
            if lane.stage == AuctionStage.IDLE.value:
                lane.turn_pointer_moved = False
            current = lane.current_member_id
            order, index = turns.prune(lane.turn_order, lane.current_turn_index, active_ids)
            if order != lane.turn_order:
                logger.info(
                    "session %s: pruned departed members from %s turn order",
                    ctx.session.id, lane.variant,
                )
                lane.turn_order, lane.current_turn_index = order, index
                if current not in order and lane.stage != AuctionStage.IDLE.value:
                    lane.turn_pointer_moved = True
        return lane

    def _require_admin(self, ctx: _Context) -> Member:
        member = ctx.require_actor()
        if not member.is_admin:
            raise ForbiddenError("League admin only")
        return member

    async def _audit_action(
        self,
        ctx: _Context,
        action: str,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> None:
        admin = ctx.require_actor()
        await self._audit(
            ctx.db,
            admin.user_id,
            ctx.session.league_id,
            action,
            "MARKET_SESSION",
            ctx.session.id,
            old_values,
            new_values,
        )
        logger.warning(
            "session %s: admin %s performed %s", ctx.session.id, admin.username, action
        )

    # ------------------------------------------------------------------
    # Shared transitions
    # ------------------------------------------------------------------

    async def _resolve_if_expired(self, ctx: _Context) -> None:
        if ctx.session.active_variant is None:
            return
        lane = ctx.session.active_lane()
        auction = lane.auction
        if (
            lane.stage == AuctionStage.BIDDING.value
            and auction is not None
            and not auction.is_paused
            and self._timer.is_expired(auction.timer_expires_at, ctx.now)
        ):
            await self._resolve(ctx, lane, closed_by="timer")
            ctx.expiry_resolved = True

    async def _settle_ready_check(self, ctx: _Context) -> None:
        """Start bidding once every remaining ready target is ready.

        Covers members who leave while everyone else has already answered.
        """
        if ctx.session.active_variant is None:
            return
        lane = ctx.session.active_lane()
        if lane.stage != AuctionStage.READY_CHECK.value or lane.nomination is None:
            return
        await self._members(ctx)
        targets = self._ready_targets(ctx, lane)
        if all(m in lane.ready_members for m in targets):
            logger.info(
                "session %s: remaining members all ready, starting bidding", ctx.session.id
            )
            self._start_bidding(ctx, lane)
            ctx.ready_check_settled = True

    def _ready_targets(self, ctx: _Context, lane: AuctionLane) -> list[str]:
        if lane.nomination is None:
            raise SessionCorruptedError(
                ctx.session.id, f"{lane.variant} ready check without a nomination"
            )
        if ctx.members is None:
            raise SessionCorruptedError(ctx.session.id, "ready check before members were loaded")
        return [m.id for m in ctx.members if m.id != lane.nomination.nominator_id]

    def _start_bidding(self, ctx: _Context, lane: AuctionLane) -> None:
        nomination = lane.nomination
        if nomination is None:
            raise SessionCorruptedError(
                ctx.session.id, f"{lane.variant} bidding started without a nomination"
            )
        seconds = ctx.session.auction_timer_seconds
        auction = Auction(
            id=generate_id(),
            variant=lane.variant,
            player=nomination.player,
            nominator_id=nomination.nominator_id,
            base_price=nomination.base_price,
            current_price=nomination.base_price,
            timer_seconds=seconds,
            started_at=ctx.now,
            timer_expires_at=self._timer.start(seconds, ctx.now),
            seller_id=nomination.seller_id,
            roster_entry_id=nomination.roster_entry_id,
        )
        lane.board.append(nomination.roster_entry_id or nomination.player.id)
        lane.nomination = None
        lane.ready_members = []
        lane.auction = auction
        lane.stage = AuctionStage.BIDDING.value
        ctx.emit(
            AuctionEvents.AUCTION_STARTED,
            auctionId=auction.id,
            variant=auction.variant,
            player=_player_payload(auction),
            nominatorId=auction.nominator_id,
            sellerId=auction.seller_id,
            basePrice=auction.base_price,
            timerSeconds=seconds,
            timerExpiresAt=isoformat_or_none(auction.timer_expires_at),
        )
        logger.info(
            "session %s: auction %s started for %s at %d",
            ctx.session.id, auction.id, auction.player.name, auction.base_price,
        )

    async def _resolve(self, ctx: _Context, lane: AuctionLane, closed_by: str) -> None:
        auction = lane.auction
        if auction is None:
            raise SessionCorruptedError(
                ctx.session.id, f"{lane.variant} resolved without an auction"
            )
        winner = auction.winning_bid
        if winner is not None:
            try:
                await rules_for(lane.variant).award(
                    ctx.db, self._league, ctx.session, auction,
                    winner.bidder.member_id, winner.amount,
                )
            except AppError as exc:
                if exc.is_fatal:
                    raise
                raise SessionCorruptedError(
                    ctx.session.id, f"settling auction {auction.id} failed: {exc.message}"
                ) from exc
            ctx.members = None  # budgets changed
        outcome = AuctionOutcome.SOLD if winner else AuctionOutcome.NO_BIDS
        await self._repo.record_auction(
            ctx.db, ctx.session, auction, outcome.value, ctx.now, closed_by
        )

        captured = [m.id for m in await self._members(ctx)]
        lane.pending_ack = PendingAcknowledgment(
            auction_id=auction.id,
            player=auction.player,
            final_price=winner.amount if winner else None,
            winner=winner.bidder if winner else None,
            members=captured,
            seller_id=auction.seller_id,
        )
        lane.auction = None
        lane.stage = AuctionStage.ACKNOWLEDGMENT.value
        ctx.emit(
            AuctionEvents.AUCTION_CLOSED,
            auctionId=auction.id,
            player=_player_payload(auction),
            sold=winner is not None,
            winner=asdict(winner.bidder) if winner else None,
            finalPrice=winner.amount if winner else None,
            sellerId=auction.seller_id,
            closedBy=closed_by,
        )
        logger.info(
            "session %s: auction %s closed (%s) %s",
            ctx.session.id,
            auction.id,
            closed_by,
            f"won by {winner.bidder.username} at {winner.amount}" if winner else "no bids",
        )
        if lane.pending_ack.is_complete:
            await self._complete_round(ctx, lane)

    async def _complete_round(self, ctx: _Context, lane: AuctionLane) -> None:
        lane.pending_ack = None
        lane.stage = AuctionStage.IDLE.value
        step = not lane.turn_pointer_moved
        lane.turn_pointer_moved = False
        await self._advance_turn(ctx, lane, step=step)

    async def _find_nominator(self, ctx: _Context, lane: AuctionLane, start: int) -> int | None:
        rules = rules_for(lane.variant)
        by_id = {m.id: m for m in await self._members(ctx)}
        eligible: set[str] = set()
        for member_id in lane.turn_order:
            member = by_id.get(member_id)
            if member is not None and await rules.is_eligible_nominator(
                ctx.db, self._league, ctx.session, lane, member
            ):
                eligible.add(member_id)
        return turns.next_eligible(lane.turn_order, start, eligible.__contains__)

    def _emit_turn(self, ctx: _Context, lane: AuctionLane) -> None:
        ctx.emit(
            AuctionEvents.TURN_ADVANCED,
            variant=lane.variant,
            memberId=lane.current_member_id,
            turnIndex=lane.current_turn_index,
            currentRole=ctx.session.current_role,
            completed=lane.completed,
        )

    async def _advance_turn(self, ctx: _Context, lane: AuctionLane, step: bool = True) -> None:
        if lane.variant == AuctionVariant.SVINCOLATI.value:
            if await self._league.count_available_players(ctx.db, ctx.session.league_id) == 0:
                await self._exhaust(ctx, lane)
                return
        start = (
            turns.advance(lane.turn_order, lane.current_turn_index)
            if step
            else lane.current_turn_index
        )
        index = await self._find_nominator(ctx, lane, start)
        if index is None:
            await self._exhaust(ctx, lane)
            return
        lane.current_turn_index = index
        self._emit_turn(ctx, lane)

    async def _exhaust(self, ctx: _Context, lane: AuctionLane) -> None:
        """Nobody can nominate: next role (first market) or the lane is done."""
        session = ctx.session
        if lane.variant == AuctionVariant.FIRST_MARKET.value:
            sequence = session.role_sequence
            position = (
                sequence.index(session.current_role)
                if session.current_role in sequence
                else len(sequence)
            )
            for role in sequence[position + 1:]:
                session.current_role = role
                ctx.emit(AuctionEvents.ROLE_ADVANCED, currentRole=role)
                logger.info("session %s: first market moves to role %s", session.id, role)
                index = await self._find_nominator(ctx, lane, 0)
                if index is not None:
                    lane.current_turn_index = index
                    self._emit_turn(ctx, lane)
                    return
            session.current_role = None
            lane.completed = True
            self._emit_turn(ctx, lane)
            self._move_phase(ctx, SessionPhase.CONTRACTS)
            return

        lane.completed = True
        self._emit_turn(ctx, lane)
        logger.info("session %s: %s market completed", session.id, lane.variant)

    def _move_phase(self, ctx: _Context, target: SessionPhase) -> None:
        previous = ctx.session.phase
        ctx.session.phase = target.value
        if target == SessionPhase.FIRST_MARKET and ctx.session.current_role is None:
            ctx.session.current_role = ctx.session.role_sequence[0]
        ctx.emit(
            AuctionEvents.PHASE_CHANGED,
            previousPhase=previous,
            phase=target.value,
            currentRole=ctx.session.current_role,
        )
        logger.info("session %s: phase %s -> %s", ctx.session.id, previous, target.value)

    # ------------------------------------------------------------------
    # Nomination
    # ------------------------------------------------------------------

    async def nominate(
        self,
        db: AsyncSession,
        session_id: str,
        user_id: str,
        player_id: str | None = None,
        roster_entry_id: str | None = None,
    ) -> MarketSession:
        return await self._execute(
            db, session_id, user_id,
            functools.partial(
                self._nominate, player_id=player_id, roster_entry_id=roster_entry_id
            ),
        )

    async def _nominate(
        self, ctx: _Context, player_id: str | None, roster_entry_id: str | None
    ) -> None:
        member = ctx.require_actor()
        lane = await self._open_lane(ctx)
        if lane.stage != AuctionStage.IDLE.value:
            raise InvalidStateError(f"cannot nominate during {lane.stage}")
        if lane.current_member_id != member.id:
            raise NotYourTurnError()

        nomination = await rules_for(lane.variant).build_nomination(
            ctx.db, self._league, ctx.session, lane, member, ctx.now,
            player_id=player_id, roster_entry_id=roster_entry_id,
        )
        lane.nomination = nomination
        lane.ready_members = []
        lane.stage = AuctionStage.NOMINATION_PENDING.value
        if member.id in lane.passed_members:
            lane.passed_members.remove(member.id)
        ctx.emit(
            AuctionEvents.NOMINATION_PENDING,
            variant=lane.variant,
            player=asdict(nomination.player),
            nominatorId=member.id,
            nominatorUsername=member.username,
            basePrice=nomination.base_price,
            sellerId=nomination.seller_id,
        )

    async def confirm_nomination(
        self, db: AsyncSession, session_id: str, user_id: str
    ) -> MarketSession:
        return await self._execute(db, session_id, user_id, self._confirm_nomination)

    async def _confirm_nomination(self, ctx: _Context) -> None:
        member = ctx.require_actor()
        lane = await self._open_lane(ctx)
        nomination = lane.nomination
        if lane.stage != AuctionStage.NOMINATION_PENDING.value or nomination is None:
            raise InvalidStateError("no nomination awaiting confirmation")
        if nomination.nominator_id != member.id:
            raise ForbiddenError("Only the nominator can confirm")

        nomination.nominator_confirmed = True
        lane.ready_members = []
        lane.stage = AuctionStage.READY_CHECK.value
        ctx.emit(
            AuctionEvents.NOMINATION_CONFIRMED,
            player=asdict(nomination.player),
            nominatorId=member.id,
            readyTargets=self._ready_targets(ctx, lane),
        )
        if (
            ctx.session.auction_mode == AuctionMode.IN_PRESENCE.value
            or not self._ready_targets(ctx, lane)
        ):
            self._start_bidding(ctx, lane)

    async def cancel_nomination(
        self, db: AsyncSession, session_id: str, user_id: str
    ) -> MarketSession:
        return await self._execute(db, session_id, user_id, self._cancel_nomination)

    async def _cancel_nomination(self, ctx: _Context) -> None:
        member = ctx.require_actor()
        lane = await self._open_lane(ctx)
        nomination = lane.nomination
        if (
            lane.stage not in (AuctionStage.NOMINATION_PENDING.value, AuctionStage.READY_CHECK.value)
            or nomination is None
        ):
            raise InvalidStateError("no nomination to cancel")

        is_nominator = nomination.nominator_id == member.id
        if not member.is_admin:
            if not is_nominator:
                raise ForbiddenError("Only the nominator or an admin can cancel")
            if nomination.nominator_confirmed:
                raise InvalidStateError("nomination already confirmed")
        elif not is_nominator:
            await self._audit_action(
                ctx, "CANCEL_NOMINATION", {"player_id": nomination.player.id}, None
            )

        lane.nomination = None
        lane.ready_members = []
        lane.stage = AuctionStage.IDLE.value
        ctx.emit(
            AuctionEvents.NOMINATION_CANCELLED,
            player=asdict(nomination.player),
            cancelledBy=member.id,
        )

    async def mark_ready(self, db: AsyncSession, session_id: str, user_id: str) -> MarketSession:
        return await self._execute(db, session_id, user_id, self._mark_ready)

    async def _mark_ready(self, ctx: _Context) -> None:
        member = ctx.require_actor()
        lane = await self._open_lane(ctx)
        if lane.stage == AuctionStage.NOMINATION_PENDING.value:
            raise InvalidStateError("nomination not confirmed yet")
        if lane.stage != AuctionStage.READY_CHECK.value or lane.nomination is None:
            raise InvalidStateError("no ready check in progress")
        if member.id == lane.nomination.nominator_id:
            raise InvalidStateError("the nominator is already ready")
        if member.id in lane.ready_members:
            raise InvalidStateError("already marked ready")

        lane.ready_members.append(member.id)
        targets = self._ready_targets(ctx, lane)
        ready = [m for m in targets if m in lane.ready_members]
        ctx.emit(
            AuctionEvents.MEMBER_READY,
            memberId=member.id,
            username=member.username,
            readyCount=len(ready),
            totalMembers=len(targets),
        )
        if len(ready) == len(targets):
            self._start_bidding(ctx, lane)

    # ------------------------------------------------------------------
    # Bidding
    # ------------------------------------------------------------------

    async def place_bid(
        self, db: AsyncSession, session_id: str, user_id: str, amount: int
    ) -> MarketSession:
        return await self._execute(
            db, session_id, user_id, functools.partial(self._place_bid, amount=amount)
        )

    async def _place_bid(self, ctx: _Context, amount: int) -> None:
        member = ctx.require_actor()
        if ctx.expiry_resolved:
            raise TimerExpiredError()
        lane = await self._open_lane(ctx)
        auction = lane.auction
        if lane.stage != AuctionStage.BIDDING.value or auction is None:
            raise InvalidStateError("no auction is accepting bids")
        if auction.is_paused:
            raise InvalidStateError("auction is paused")
        if self._timer.is_expired(auction.timer_expires_at, ctx.now):
            raise TimerExpiredError()
        rules = rules_for(lane.variant)
        rules.check_bidder(lane, auction, member)
        if amount <= auction.current_price:
            raise BidTooLowError(amount, auction.current_price)
        budget = await self._league.get_budget(ctx.db, member.id)
        if amount > budget:
            raise InsufficientBudgetError(amount, budget)
        slot = await self._league.get_role_slot(ctx.db, member.id, auction.player.position)
        if slot.is_full:
            raise RoleSlotFullError(auction.player.position)

        bid = Bid(
            id=generate_id(),
            bidder=Bidder(member_id=member.id, username=member.username, team_name=member.team_name),
            amount=amount,
            placed_at=ctx.now,
        )
        auction.bids.insert(0, bid)
        auction.current_price = amount
        auction.timer_expires_at = self._timer.reset(auction.timer_seconds, ctx.now)
        ctx.emit(
            AuctionEvents.BID_PLACED,
            auctionId=auction.id,
            memberId=member.id,
            username=member.username,
            teamName=member.team_name,
            amount=amount,
            bidCount=len(auction.bids),
            timerExpiresAt=isoformat_or_none(auction.timer_expires_at),
            timerSeconds=auction.timer_seconds,
        )

    async def resolve_expired(self, db: AsyncSession, session_id: str) -> MarketSession:
        """Settle a lapsed auction or stalled ready check (sweeper and readers)."""

        async def _noop(ctx: _Context) -> None:
            return None

        return await self._execute(db, session_id, None, _noop)

    # ------------------------------------------------------------------
    # Acknowledgment
    # ------------------------------------------------------------------

    async def acknowledge(self, db: AsyncSession, session_id: str, user_id: str) -> MarketSession:
        return await self._execute(db, session_id, user_id, self._acknowledge)

    async def _acknowledge(self, ctx: _Context) -> None:
        member = ctx.require_actor()
        lane = await self._open_lane(ctx)
        ack = lane.pending_ack
        if lane.stage != AuctionStage.ACKNOWLEDGMENT.value or ack is None:
            raise InvalidStateError("nothing to acknowledge")
        if member.id not in ack.members:
            raise ForbiddenError("You were not in the room when this auction closed")
        if member.id in ack.acknowledged_members:
            raise InvalidStateError("already acknowledged")

        ack.acknowledged_members.append(member.id)
        self._emit_ack(ctx, ack)
        if ack.is_complete:
            await self._complete_round(ctx, lane)

    def _emit_ack(self, ctx: _Context, ack: PendingAcknowledgment) -> None:
        ctx.emit(
            AuctionEvents.ACKNOWLEDGMENT_UPDATED,
            auctionId=ack.auction_id,
            acknowledgedMembers=list(ack.acknowledged_members),
            pendingMembers=ack.pending_members,
            totalMembers=len(ack.members),
        )

    # ------------------------------------------------------------------
    # Svincolati: pass / finished
    # ------------------------------------------------------------------

    async def _svincolati_lane(self, ctx: _Context) -> AuctionLane:
        lane = await self._open_lane(ctx)
        if lane.variant != AuctionVariant.SVINCOLATI.value:
            raise InvalidStateError("only available in the svincolati market")
        return lane

    def _emit_svincolati(self, ctx: _Context, lane: AuctionLane) -> None:
        ctx.emit(
            AuctionEvents.SVINCOLATI_STATE_CHANGED,
            passedMembers=list(lane.passed_members),
            finishedMembers=list(lane.finished_members),
        )

    async def pass_turn(self, db: AsyncSession, session_id: str, user_id: str) -> MarketSession:
        return await self._execute(db, session_id, user_id, self._pass_turn)

    async def _pass_turn(self, ctx: _Context) -> None:
        member = ctx.require_actor()
        lane = await self._svincolati_lane(ctx)
        if lane.stage != AuctionStage.IDLE.value:
            raise InvalidStateError(f"cannot pass during {lane.stage}")
        if lane.current_member_id != member.id:
            raise NotYourTurnError()
        if member.id not in lane.passed_members:
            lane.passed_members.append(member.id)
        self._emit_svincolati(ctx, lane)
        await self._advance_turn(ctx, lane)

    async def declare_finished(
        self, db: AsyncSession, session_id: str, user_id: str
    ) -> MarketSession:
        return await self._execute(db, session_id, user_id, self._declare_finished)

    async def _declare_finished(self, ctx: _Context) -> None:
        member = ctx.require_actor()
        lane = await self._svincolati_lane(ctx)
        if member.id in lane.finished_members:
            raise InvalidStateError("already declared finished")
        lane.finished_members.append(member.id)
        self._emit_svincolati(ctx, lane)
        if lane.stage == AuctionStage.IDLE.value and lane.current_member_id == member.id:
            await self._advance_turn(ctx, lane)

    async def undo_finished(self, db: AsyncSession, session_id: str, user_id: str) -> MarketSession:
        return await self._execute(db, session_id, user_id, self._undo_finished)

    async def _undo_finished(self, ctx: _Context) -> None:
        member = ctx.require_actor()
        lane = await self._svincolati_lane(ctx)
        if member.id not in lane.finished_members:
            raise InvalidStateError("not declared finished")
        lane.finished_members.remove(member.id)
        self._emit_svincolati(ctx, lane)

    # ------------------------------------------------------------------
    # Admin overrides
    # ------------------------------------------------------------------

    async def force_all_ready(
        self, db: AsyncSession, session_id: str, user_id: str
    ) -> MarketSession:
        return await self._execute(db, session_id, user_id, self._force_all_ready)

    async def _force_all_ready(self, ctx: _Context) -> None:
        self._require_admin(ctx)
        lane = await self._open_lane(ctx)
        nomination = lane.nomination
        if (
            lane.stage not in (AuctionStage.NOMINATION_PENDING.value, AuctionStage.READY_CHECK.value)
            or nomination is None
        ):
            raise InvalidStateError("no nomination waiting for members")
        await self._audit_action(
            ctx,
            "FORCE_ALL_READY",
            {"ready_members": list(lane.ready_members)},
            {"player_id": nomination.player.id},
        )
        nomination.nominator_confirmed = True
        self._start_bidding(ctx, lane)

    async def close_auction(self, db: AsyncSession, session_id: str, user_id: str) -> MarketSession:
        return await self._execute(db, session_id, user_id, self._close_auction)

    async def _close_auction(self, ctx: _Context) -> None:
        self._require_admin(ctx)
        lane = await self._open_lane(ctx)
        if lane.stage != AuctionStage.BIDDING.value or lane.auction is None:
            raise InvalidStateError("no auction in progress")
        await self._audit_action(
            ctx,
            "CLOSE_AUCTION",
            {"auction_id": lane.auction.id, "current_price": lane.auction.current_price},
            None,
        )
        await self._resolve(ctx, lane, closed_by="admin")

    async def force_acknowledge_all(
        self, db: AsyncSession, session_id: str, user_id: str
    ) -> MarketSession:
        return await self._execute(db, session_id, user_id, self._force_acknowledge_all)

    async def _force_acknowledge_all(self, ctx: _Context) -> None:
        self._require_admin(ctx)
        lane = await self._open_lane(ctx)
        ack = lane.pending_ack
        if lane.stage != AuctionStage.ACKNOWLEDGMENT.value or ack is None:
            raise InvalidStateError("nothing to acknowledge")
        await self._audit_action(
            ctx, "FORCE_ACKNOWLEDGE_ALL", {"pending_members": ack.pending_members}, None
        )
        ack.acknowledged_members = list(ack.members)
        self._emit_ack(ctx, ack)
        await self._complete_round(ctx, lane)

    async def pause_auction(self, db: AsyncSession, session_id: str, user_id: str) -> MarketSession:
        return await self._execute(db, session_id, user_id, self._pause_auction)

    async def _pause_auction(self, ctx: _Context) -> None:
        self._require_admin(ctx)
        lane = await self._open_lane(ctx)
        auction = lane.auction
        if lane.stage != AuctionStage.BIDDING.value or auction is None:
            raise InvalidStateError("no auction in progress")
        if auction.is_paused or auction.timer_expires_at is None:
            raise InvalidStateError("auction already paused")
        left = self._timer.pause(auction.timer_expires_at, ctx.now)
        await self._audit_action(ctx, "PAUSE_AUCTION", None, {"remaining_seconds": left})
        auction.paused_remaining_seconds = left
        auction.timer_expires_at = None
        ctx.emit(AuctionEvents.AUCTION_PAUSED, auctionId=auction.id, remainingSeconds=left)

    async def resume_auction(
        self, db: AsyncSession, session_id: str, user_id: str
    ) -> MarketSession:
        return await self._execute(db, session_id, user_id, self._resume_auction)

    async def _resume_auction(self, ctx: _Context) -> None:
        self._require_admin(ctx)
        lane = await self._open_lane(ctx)
        auction = lane.auction
        if lane.stage != AuctionStage.BIDDING.value or auction is None:
            raise InvalidStateError("no auction in progress")
        if auction.paused_remaining_seconds is None:
            raise InvalidStateError("auction is not paused")
        await self._audit_action(
            ctx, "RESUME_AUCTION", {"remaining_seconds": auction.paused_remaining_seconds}, None
        )
        auction.timer_expires_at = self._timer.resume(auction.paused_remaining_seconds, ctx.now)
        auction.paused_remaining_seconds = None
        ctx.emit(
            AuctionEvents.AUCTION_RESUMED,
            auctionId=auction.id,
            timerExpiresAt=isoformat_or_none(auction.timer_expires_at),
        )

    async def cancel_last_bid(
        self, db: AsyncSession, session_id: str, user_id: str
    ) -> MarketSession:
        return await self._execute(db, session_id, user_id, self._cancel_last_bid)

    async def _cancel_last_bid(self, ctx: _Context) -> None:
        self._require_admin(ctx)
        lane = await self._open_lane(ctx)
        auction = lane.auction
        if lane.stage != AuctionStage.BIDDING.value or auction is None:
            raise InvalidStateError("no auction in progress")
        if not auction.bids:
            raise InvalidStateError("no bids to cancel")
        removed = auction.bids[0]
        await self._audit_action(
            ctx,
            "CANCEL_LAST_BID",
            {"bid_id": removed.id, "member_id": removed.bidder.member_id, "amount": removed.amount},
            None,
        )
        auction.bids.pop(0)
        auction.current_price = auction.bids[0].amount if auction.bids else auction.base_price
        if not auction.is_paused:
            auction.timer_expires_at = self._timer.reset(auction.timer_seconds, ctx.now)
        ctx.emit(
            AuctionEvents.BID_CANCELLED,
            auctionId=auction.id,
            cancelledBidId=removed.id,
            currentPrice=auction.current_price,
            timerExpiresAt=isoformat_or_none(auction.timer_expires_at),
        )

    async def set_turn_order(
        self,
        db: AsyncSession,
        session_id: str,
        user_id: str,
        member_ids: list[str] | None = None,
    ) -> MarketSession:
        return await self._execute(
            db, session_id, user_id, functools.partial(self._set_turn_order, member_ids=member_ids)
        )

    async def _set_turn_order(self, ctx: _Context, member_ids: list[str] | None) -> None:
        self._require_admin(ctx)
        lane = ctx.session.active_lane()
        if lane.completed:
            raise InvalidStateError(f"{lane.variant} market is already completed")
        if lane.stage != AuctionStage.IDLE.value:
            raise InvalidStateError(f"cannot change turn order during {lane.stage}")
        active_ids = [m.id for m in await self._members(ctx)]
        previous = list(lane.turn_order)
        lane.turn_order, lane.turn_order_seed = turns.compute_initial_order(
            active_ids, explicit=member_ids
        )
        lane.current_turn_index = 0
        lane.turn_pointer_moved = False
        lane.passed_members = []
        if lane.variant == AuctionVariant.FIRST_MARKET.value:
            ctx.session.current_role = ctx.session.role_sequence[0]
        await self._audit_action(
            ctx, "SET_TURN_ORDER", {"turn_order": previous}, {"turn_order": lane.turn_order}
        )
        await self._advance_turn(ctx, lane, step=False)

    async def set_timer(
        self, db: AsyncSession, session_id: str, user_id: str, seconds: int
    ) -> MarketSession:
        return await self._execute(
            db, session_id, user_id, functools.partial(self._set_timer, seconds=seconds)
        )

    async def _set_timer(self, ctx: _Context, seconds: int) -> None:
        self._require_admin(ctx)
        low, high = settings.AUCTION_TIMER_MIN_SECONDS, settings.AUCTION_TIMER_MAX_SECONDS
        if not low <= seconds <= high:
            raise TimerOutOfRangeError(seconds, low, high)
        await self._audit_action(
            ctx,
            "SET_AUCTION_TIMER",
            {"seconds": ctx.session.auction_timer_seconds},
            {"seconds": seconds},
        )
        ctx.session.auction_timer_seconds = seconds
        ctx.emit(AuctionEvents.TIMER_UPDATED, timerSeconds=seconds)

    async def advance_phase(
        self, db: AsyncSession, session_id: str, user_id: str, phase: str
    ) -> MarketSession:
        return await self._execute(
            db, session_id, user_id, functools.partial(self._advance_phase, phase=phase)
        )

    async def _advance_phase(self, ctx: _Context, phase: str) -> None:
        self._require_admin(ctx)
        session = ctx.session
        try:
            target = SessionPhase(phase)
        except ValueError:
            raise PhaseTransitionError(session.phase, phase) from None
        if PHASE_ORDER.index(target) <= PHASE_ORDER.index(SessionPhase(session.phase)):
            raise PhaseTransitionError(session.phase, phase)
        if session.active_variant is not None:
            lane = session.active_lane()
            if lane.stage != AuctionStage.IDLE.value:
                raise PhaseTransitionError(session.phase, phase)
        await self._audit_action(ctx, "ADVANCE_PHASE", {"phase": session.phase}, {"phase": phase})
        self._move_phase(ctx, target)

    async def repair_session(
        self,
        db: AsyncSession,
        session_id: str,
        user_id: str,
        turn_index: int | None = None,
        reset_stage: bool = False,
    ) -> MarketSession:
        return await self._execute(
            db, session_id, user_id,
            functools.partial(self._repair, turn_index=turn_index, reset_stage=reset_stage),
            repair=True,
        )

    async def _repair(self, ctx: _Context, turn_index: int | None, reset_stage: bool) -> None:
        self._require_admin(ctx)
        session = ctx.session
        old = {"frozen_reason": session.frozen_reason}
        if session.active_variant is not None:
            lane = session.active_lane()
            if turn_index is not None:
                if not 0 <= turn_index < len(lane.turn_order):
                    raise InvalidTurnOrderError(f"index {turn_index} outside turn order")
                old["turn_index"] = lane.current_turn_index
                lane.current_turn_index = turn_index
                lane.turn_pointer_moved = False
            if reset_stage:
                old["stage"] = lane.stage
                lane.nomination = None
                lane.auction = None
                lane.pending_ack = None
                lane.ready_members = []
                lane.stage = AuctionStage.IDLE.value
                lane.turn_pointer_moved = False
        await self._audit_action(ctx, "REPAIR_SESSION", old, {"frozen_reason": None})
        session.frozen_reason = None
        ctx.emit(AuctionEvents.SESSION_REPAIRED, phase=session.phase)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def member_for(self, db: AsyncSession, session_id: str, user_id: str) -> Member:
        """Unlocked lookup of the caller's membership in the session's league."""
        session = await self._repo.get(db, session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return await self._actor(db, session, user_id)

    async def load_view(
        self, db: AsyncSession, session_id: str, user_id: str
    ) -> tuple[MarketSession, Member, list[Member]]:
        """Unlocked read for the state endpoint; settles lapsed timers and ready checks first."""
        session = await self._repo.get(db, session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        if session.frozen_reason is None and session.active_variant is not None:
            lane = session.active_lane()
            auction = lane.auction
            lapsed = (
                auction is not None
                and not auction.is_paused
                and self._timer.is_expired(auction.timer_expires_at)
            )
            stalled = False
            if lane.stage == AuctionStage.READY_CHECK.value and lane.nomination is not None:
                nominator_id = lane.nomination.nominator_id
                active = await self._league.list_active_members(db, session.league_id)
                stalled = all(
                    m.id in lane.ready_members for m in active if m.id != nominator_id
                )
            if lapsed or stalled:
                await db.rollback()
                session = await self.resolve_expired(db, session_id)
        member = await self._actor(db, session, user_id)
        members = await self._league.list_active_members(db, session.league_id)
        return session, member, members
