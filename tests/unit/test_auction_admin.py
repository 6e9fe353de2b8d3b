"""Unit tests for admin overrides on the auction engine."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.fc_auction.engine.engine import AuctionEngine
from src.fc_common.errors import (
    ForbiddenError,
    InvalidStateError,
    InvalidTurnOrderError,
    PhaseTransitionError,
    TimerOutOfRangeError,
)
from tests.unit.auction_fakes import (
    SESSION_ID,
    FakeClock,
    FakeSessionRepository,
    RecordingNotifier,
    make_session,
)

S = SESSION_ID


async def open_bidding(engine: AuctionEngine, db: MagicMock) -> None:
    await engine.nominate(db, S, "u1", player_id="gk1")
    await engine.force_all_ready(db, S, "u1")


def audited_actions(audit: AsyncMock) -> list[str]:
    return [c.args[3] for c in audit.await_args_list]


class TestForceAllReady:
    async def test_admin_starts_bidding_from_pending_nomination(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        audit: AsyncMock,
    ) -> None:
        await engine.nominate(db, S, "u1", player_id="gk1")
        await engine.force_all_ready(db, S, "u1")

        assert session_repo.stored().first_market.stage == "BIDDING"
        assert audited_actions(audit) == ["FORCE_ALL_READY"]

    async def test_manager_forbidden(
        self, engine: AuctionEngine, db: MagicMock, audit: AsyncMock
    ) -> None:
        await engine.nominate(db, S, "u1", player_id="gk1")
        with pytest.raises(ForbiddenError):
            await engine.force_all_ready(db, S, "u2")
        audit.assert_not_awaited()

    async def test_requires_a_nomination(self, engine: AuctionEngine, db: MagicMock) -> None:
        with pytest.raises(InvalidStateError):
            await engine.force_all_ready(db, S, "u1")


class TestCloseAndAcknowledge:
    async def test_close_auction_resolves_immediately(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
    ) -> None:
        await open_bidding(engine, db)
        await engine.place_bid(db, S, "u3", 30)

        await engine.close_auction(db, S, "u1")

        lane = session_repo.stored().first_market
        assert lane.stage == "ACKNOWLEDGMENT"
        assert lane.pending_ack.winner.member_id == "m3"
        assert session_repo.recorded[-1]["closed_by"] == "admin"

    async def test_close_without_auction(self, engine: AuctionEngine, db: MagicMock) -> None:
        with pytest.raises(InvalidStateError):
            await engine.close_auction(db, S, "u1")

    async def test_force_acknowledge_completes_round(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        audit: AsyncMock,
    ) -> None:
        await open_bidding(engine, db)
        await engine.close_auction(db, S, "u1")
        await engine.acknowledge(db, S, "u2")

        await engine.force_acknowledge_all(db, S, "u1")

        lane = session_repo.stored().first_market
        assert lane.stage == "IDLE"
        assert lane.current_member_id == "m2"
        assert audit.await_args_list[-1].args[6] == {"pending_members": ["m1", "m3", "m4"]}

    async def test_force_acknowledge_manager_forbidden(
        self, engine: AuctionEngine, db: MagicMock
    ) -> None:
        await open_bidding(engine, db)
        await engine.close_auction(db, S, "u1")
        with pytest.raises(ForbiddenError):
            await engine.force_acknowledge_all(db, S, "u2")


class TestPauseResume:
    async def test_pause_freezes_remaining_time(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        clock: FakeClock,
    ) -> None:
        await open_bidding(engine, db)
        clock.advance(10)

        await engine.pause_auction(db, S, "u1")

        auction = session_repo.stored().first_market.auction
        assert auction.paused_remaining_seconds == 20
        assert auction.timer_expires_at is None

    async def test_paused_auction_never_expires_and_rejects_bids(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        clock: FakeClock,
    ) -> None:
        await open_bidding(engine, db)
        await engine.pause_auction(db, S, "u1")
        clock.advance(300)

        await engine.resolve_expired(db, S)
        assert session_repo.stored().first_market.stage == "BIDDING"
        with pytest.raises(InvalidStateError):
            await engine.place_bid(db, S, "u2", 30)

    async def test_resume_restores_remaining_time(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        clock: FakeClock,
        notifier: RecordingNotifier,
    ) -> None:
        await open_bidding(engine, db)
        clock.advance(10)
        await engine.pause_auction(db, S, "u1")
        clock.advance(120)

        await engine.resume_auction(db, S, "u1")

        auction = session_repo.stored().first_market.auction
        assert auction.paused_remaining_seconds is None
        assert auction.timer_expires_at == clock() + timedelta(seconds=20)
        assert notifier.events()[-1] == "auction-resumed"

    async def test_pause_twice_and_resume_unpaused_rejected(
        self, engine: AuctionEngine, db: MagicMock
    ) -> None:
        await open_bidding(engine, db)
        with pytest.raises(InvalidStateError):
            await engine.resume_auction(db, S, "u1")
        await engine.pause_auction(db, S, "u1")
        with pytest.raises(InvalidStateError):
            await engine.pause_auction(db, S, "u1")


class TestCancelLastBid:
    async def test_restores_previous_price(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
    ) -> None:
        await open_bidding(engine, db)
        await engine.place_bid(db, S, "u2", 19)
        await engine.place_bid(db, S, "u3", 25)

        await engine.cancel_last_bid(db, S, "u1")
        auction = session_repo.stored().first_market.auction
        assert auction.current_price == 19
        assert auction.winning_bid.bidder.member_id == "m2"

        await engine.cancel_last_bid(db, S, "u1")
        assert session_repo.stored().first_market.auction.current_price == 18

        with pytest.raises(InvalidStateError):
            await engine.cancel_last_bid(db, S, "u1")


class TestTimerSetting:
    async def test_out_of_range_rejected(self, engine: AuctionEngine, db: MagicMock) -> None:
        with pytest.raises(TimerOutOfRangeError):
            await engine.set_timer(db, S, "u1", 5)
        with pytest.raises(TimerOutOfRangeError):
            await engine.set_timer(db, S, "u1", 301)

    async def test_new_duration_applies_to_next_auction(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        clock: FakeClock,
    ) -> None:
        await engine.set_timer(db, S, "u1", 60)
        await open_bidding(engine, db)

        auction = session_repo.stored().first_market.auction
        assert auction.timer_seconds == 60
        assert auction.timer_expires_at == clock() + timedelta(seconds=60)


class TestTurnOrder:
    async def test_explicit_order(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
    ) -> None:
        await engine.set_turn_order(db, S, "u1", ["m4", "m3", "m2", "m1"])

        lane = session_repo.stored().first_market
        assert lane.turn_order == ["m4", "m3", "m2", "m1"]
        assert lane.turn_order_seed is None
        assert lane.current_member_id == "m4"

    async def test_incomplete_order_rejected(self, engine: AuctionEngine, db: MagicMock) -> None:
        with pytest.raises(InvalidTurnOrderError):
            await engine.set_turn_order(db, S, "u1", ["m1", "m2"])

    async def test_random_order_records_seed(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
    ) -> None:
        await engine.set_turn_order(db, S, "u1", None)

        lane = session_repo.stored().first_market
        assert sorted(lane.turn_order) == ["m1", "m2", "m3", "m4"]
        assert lane.turn_order_seed is not None

    async def test_first_use_draws_order_when_unset(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
    ) -> None:
        session_repo.put(make_session(phase="SVINCOLATI", current_role=None, turn_order=[]))

        await engine.declare_finished(db, S, "u1")

        lane = session_repo.stored().svincolati
        assert sorted(lane.turn_order) == ["m1", "m2", "m3", "m4"]
        assert lane.turn_order_seed is not None

    async def test_cannot_change_during_nomination(
        self, engine: AuctionEngine, db: MagicMock
    ) -> None:
        await engine.nominate(db, S, "u1", player_id="gk1")
        with pytest.raises(InvalidStateError):
            await engine.set_turn_order(db, S, "u1", ["m4", "m3", "m2", "m1"])


class TestPhase:
    async def test_forward_move(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        notifier: RecordingNotifier,
    ) -> None:
        await engine.advance_phase(db, S, "u1", "RUBATA")

        assert session_repo.stored().phase == "RUBATA"
        assert notifier.events() == ["phase-changed"]

    async def test_setup_to_first_market_sets_first_role(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
    ) -> None:
        session_repo.put(make_session(phase="SETUP", current_role=None))
        await engine.advance_phase(db, S, "u1", "FIRST_MARKET")

        stored = session_repo.stored()
        assert stored.phase == "FIRST_MARKET"
        assert stored.current_role == "P"

    async def test_backward_move_rejected(self, engine: AuctionEngine, db: MagicMock) -> None:
        with pytest.raises(PhaseTransitionError):
            await engine.advance_phase(db, S, "u1", "SETUP")

    async def test_unknown_phase_rejected(self, engine: AuctionEngine, db: MagicMock) -> None:
        with pytest.raises(PhaseTransitionError):
            await engine.advance_phase(db, S, "u1", "DRAFT")

    async def test_not_while_auction_running(
        self, engine: AuctionEngine, db: MagicMock
    ) -> None:
        await open_bidding(engine, db)
        with pytest.raises(PhaseTransitionError):
            await engine.advance_phase(db, S, "u1", "CONTRACTS")

    async def test_manager_forbidden(self, engine: AuctionEngine, db: MagicMock) -> None:
        with pytest.raises(ForbiddenError):
            await engine.advance_phase(db, S, "u2", "RUBATA")
