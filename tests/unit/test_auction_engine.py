"""Unit tests for AuctionEngine: first market flow, bidding, acknowledgment."""

import asyncio
from unittest.mock import MagicMock

import pytest

from src.fc_auction.engine.engine import AuctionEngine, _Context
from src.fc_common.errors import (
    BidTooLowError,
    ForbiddenError,
    InsufficientBudgetError,
    InvalidStateError,
    NotLeagueMemberError,
    NotYourTurnError,
    PlayerUnavailableError,
    RoleSlotFullError,
    SessionCorruptedError,
    SessionFrozenError,
    SessionNotFoundError,
    TimerExpiredError,
)
from src.fc_league.domain.models import Player
from tests.unit.auction_fakes import (
    SESSION_ID,
    T0,
    FakeClock,
    FakeLeagueRepository,
    FakeSessionRepository,
    RecordingNotifier,
    make_member,
    make_session,
)

S = SESSION_ID


async def open_bidding(
    engine: AuctionEngine, db: MagicMock, player_id: str = "gk1", nominator: str = "u1"
) -> None:
    """Nominate, confirm and have every other member mark ready."""
    await engine.nominate(db, S, nominator, player_id=player_id)
    await engine.confirm_nomination(db, S, nominator)
    for user in ("u1", "u2", "u3", "u4"):
        if user != nominator:
            await engine.mark_ready(db, S, user)


class TestNomination:
    async def test_current_member_nominates(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        notifier: RecordingNotifier,
    ) -> None:
        await engine.nominate(db, S, "u1", player_id="gk1")

        lane = session_repo.stored().first_market
        assert lane.stage == "NOMINATION_PENDING"
        assert lane.nomination is not None
        assert lane.nomination.player.id == "gk1"
        assert lane.nomination.base_price == 18  # quotation
        assert lane.nomination.nominator_confirmed is False
        assert notifier.events() == ["nomination-pending"]
        db.commit.assert_awaited()

    async def test_out_of_turn_rejected_without_side_effects(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        notifier: RecordingNotifier,
    ) -> None:
        with pytest.raises(NotYourTurnError):
            await engine.nominate(db, S, "u2", player_id="gk1")

        assert session_repo.stored().first_market.stage == "IDLE"
        assert session_repo.saves == 0
        assert notifier.sent == []
        db.rollback.assert_awaited()

    async def test_player_of_another_role_rejected(
        self, engine: AuctionEngine, db: MagicMock
    ) -> None:
        with pytest.raises(PlayerUnavailableError):
            await engine.nominate(db, S, "u1", player_id="df1")

    async def test_owned_player_rejected(
        self, engine: AuctionEngine, db: MagicMock, league_repo: FakeLeagueRepository
    ) -> None:
        league_repo.give("m3", "gk1", 10)
        with pytest.raises(PlayerUnavailableError):
            await engine.nominate(db, S, "u1", player_id="gk1")

    async def test_inactive_player_rejected(
        self, engine: AuctionEngine, db: MagicMock, session_repo: FakeSessionRepository
    ) -> None:
        session_repo.put(make_session(current_role="A"))
        with pytest.raises(PlayerUnavailableError):
            await engine.nominate(db, S, "u1", player_id="at2")

    async def test_full_role_slot_blocks_nomination(
        self, engine: AuctionEngine, db: MagicMock, league_repo: FakeLeagueRepository
    ) -> None:
        league_repo.give("m1", "gk2", 10)
        with pytest.raises(RoleSlotFullError):
            await engine.nominate(db, S, "u1", player_id="gk1")

    async def test_second_nomination_rejected(
        self, engine: AuctionEngine, db: MagicMock
    ) -> None:
        await engine.nominate(db, S, "u1", player_id="gk1")
        with pytest.raises(InvalidStateError):
            await engine.nominate(db, S, "u1", player_id="gk2")

    async def test_non_member_rejected(self, engine: AuctionEngine, db: MagicMock) -> None:
        with pytest.raises(NotLeagueMemberError):
            await engine.nominate(db, S, "u9", player_id="gk1")

    async def test_unknown_session(self, engine: AuctionEngine, db: MagicMock) -> None:
        with pytest.raises(SessionNotFoundError):
            await engine.nominate(db, "nope", "u1", player_id="gk1")

    async def test_phase_without_auctions(
        self, engine: AuctionEngine, db: MagicMock, session_repo: FakeSessionRepository
    ) -> None:
        session_repo.put(make_session(phase="CONTRACTS", current_role=None))
        with pytest.raises(InvalidStateError):
            await engine.nominate(db, S, "u1", player_id="gk1")


class TestConfirmAndReady:
    async def test_confirm_opens_ready_check(
        self, engine: AuctionEngine, db: MagicMock, session_repo: FakeSessionRepository
    ) -> None:
        await engine.nominate(db, S, "u1", player_id="gk1")
        await engine.confirm_nomination(db, S, "u1")

        lane = session_repo.stored().first_market
        assert lane.stage == "READY_CHECK"
        assert lane.nomination.nominator_confirmed is True

    async def test_only_nominator_confirms(self, engine: AuctionEngine, db: MagicMock) -> None:
        await engine.nominate(db, S, "u1", player_id="gk1")
        with pytest.raises(ForbiddenError):
            await engine.confirm_nomination(db, S, "u2")

    async def test_ready_before_confirmation_rejected(
        self, engine: AuctionEngine, db: MagicMock
    ) -> None:
        await engine.nominate(db, S, "u1", player_id="gk1")
        with pytest.raises(InvalidStateError):
            await engine.mark_ready(db, S, "u2")

    async def test_last_ready_starts_bidding(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        notifier: RecordingNotifier,
    ) -> None:
        await engine.nominate(db, S, "u1", player_id="gk1")
        await engine.confirm_nomination(db, S, "u1")
        await engine.mark_ready(db, S, "u2")
        await engine.mark_ready(db, S, "u3")
        assert session_repo.stored().first_market.stage == "READY_CHECK"

        await engine.mark_ready(db, S, "u4")

        lane = session_repo.stored().first_market
        assert lane.stage == "BIDDING"
        assert lane.nomination is None
        assert lane.auction.current_price == 18
        assert lane.auction.bids == []
        assert lane.auction.timer_expires_at == T0.replace(second=30)
        assert "gk1" in lane.board
        assert notifier.events()[-1] == "auction-started"

    async def test_duplicate_ready_rejected(self, engine: AuctionEngine, db: MagicMock) -> None:
        await engine.nominate(db, S, "u1", player_id="gk1")
        await engine.confirm_nomination(db, S, "u1")
        await engine.mark_ready(db, S, "u2")
        with pytest.raises(InvalidStateError):
            await engine.mark_ready(db, S, "u2")

    async def test_nominator_cannot_mark_ready(
        self, engine: AuctionEngine, db: MagicMock
    ) -> None:
        await engine.nominate(db, S, "u1", player_id="gk1")
        await engine.confirm_nomination(db, S, "u1")
        with pytest.raises(InvalidStateError):
            await engine.mark_ready(db, S, "u1")

    async def test_in_presence_skips_ready_check(
        self, engine: AuctionEngine, db: MagicMock, session_repo: FakeSessionRepository
    ) -> None:
        session_repo.put(make_session(auction_mode="IN_PRESENCE"))
        await engine.nominate(db, S, "u1", player_id="gk1")
        await engine.confirm_nomination(db, S, "u1")
        assert session_repo.stored().first_market.stage == "BIDDING"


class TestCancelNomination:
    async def test_nominator_cancels_before_confirming(
        self, engine: AuctionEngine, db: MagicMock, session_repo: FakeSessionRepository
    ) -> None:
        await engine.nominate(db, S, "u1", player_id="gk1")
        await engine.cancel_nomination(db, S, "u1")

        lane = session_repo.stored().first_market
        assert lane.stage == "IDLE"
        assert lane.nomination is None
        assert lane.current_member_id == "m1"

    async def test_nominator_cannot_cancel_after_confirming(
        self, engine: AuctionEngine, db: MagicMock
    ) -> None:
        await engine.nominate(db, S, "u1", player_id="gk1")
        await engine.confirm_nomination(db, S, "u1")
        with pytest.raises(InvalidStateError):
            await engine.cancel_nomination(db, S, "u1")

    async def test_other_manager_cannot_cancel(
        self, engine: AuctionEngine, db: MagicMock, session_repo: FakeSessionRepository
    ) -> None:
        session_repo.stored().first_market.current_turn_index = 1
        await engine.nominate(db, S, "u2", player_id="gk1")
        with pytest.raises(ForbiddenError):
            await engine.cancel_nomination(db, S, "u3")

    async def test_admin_cancels_any_nomination_and_is_audited(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        audit: MagicMock,
    ) -> None:
        session_repo.stored().first_market.current_turn_index = 1
        await engine.nominate(db, S, "u2", player_id="gk1")
        await engine.confirm_nomination(db, S, "u2")
        await engine.cancel_nomination(db, S, "u1")

        assert session_repo.stored().first_market.stage == "IDLE"
        audit.assert_awaited_once()
        assert audit.await_args.args[3] == "CANCEL_NOMINATION"


class TestBidding:
    async def test_valid_bid_raises_price_and_resets_timer(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        clock: FakeClock,
        notifier: RecordingNotifier,
    ) -> None:
        await open_bidding(engine, db)
        clock.advance(20)

        await engine.place_bid(db, S, "u2", 19)

        auction = session_repo.stored().first_market.auction
        assert auction.current_price == 19
        assert auction.bids[0].bidder.member_id == "m2"
        assert auction.timer_expires_at == clock() + (T0.replace(second=30) - T0)
        _, event, payload = notifier.sent[-1]
        assert event == "bid-placed"
        assert payload["amount"] == 19

    async def test_bid_must_exceed_current_price(
        self, engine: AuctionEngine, db: MagicMock
    ) -> None:
        await open_bidding(engine, db)
        with pytest.raises(BidTooLowError):
            await engine.place_bid(db, S, "u2", 18)
        await engine.place_bid(db, S, "u2", 25)
        with pytest.raises(BidTooLowError):
            await engine.place_bid(db, S, "u3", 25)

    async def test_bid_above_budget_rejected(self, engine: AuctionEngine, db: MagicMock) -> None:
        await open_bidding(engine, db)
        with pytest.raises(InsufficientBudgetError):
            await engine.place_bid(db, S, "u2", 101)

    async def test_whole_budget_may_be_bid(
        self, engine: AuctionEngine, db: MagicMock, session_repo: FakeSessionRepository
    ) -> None:
        await open_bidding(engine, db)
        await engine.place_bid(db, S, "u2", 100)
        assert session_repo.stored().first_market.auction.current_price == 100

    async def test_full_role_slot_cannot_bid(
        self, engine: AuctionEngine, db: MagicMock, league_repo: FakeLeagueRepository
    ) -> None:
        league_repo.give("m3", "gk2", 10)
        await open_bidding(engine, db)
        with pytest.raises(RoleSlotFullError):
            await engine.place_bid(db, S, "u3", 20)

    async def test_bid_outside_bidding_rejected(
        self, engine: AuctionEngine, db: MagicMock
    ) -> None:
        with pytest.raises(InvalidStateError):
            await engine.place_bid(db, S, "u2", 10)

    async def test_late_bid_resolves_auction_then_fails(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        clock: FakeClock,
    ) -> None:
        await open_bidding(engine, db)
        clock.advance(30)

        with pytest.raises(TimerExpiredError):
            await engine.place_bid(db, S, "u2", 50)

        lane = session_repo.stored().first_market
        assert lane.stage == "ACKNOWLEDGMENT"
        assert lane.pending_ack.winner is None
        assert session_repo.recorded[-1]["outcome"] == "NO_BIDS"
        assert session_repo.recorded[-1]["closed_by"] == "timer"

    async def test_concurrent_equal_bids_accept_exactly_one(
        self, engine: AuctionEngine, db: MagicMock, session_repo: FakeSessionRepository
    ) -> None:
        await open_bidding(engine, db)

        results = await asyncio.gather(
            engine.place_bid(db, S, "u2", 20),
            engine.place_bid(db, S, "u3", 20),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], BidTooLowError)
        auction = session_repo.stored().first_market.auction
        assert auction.current_price == 20
        assert len(auction.bids) == 1


class TestResolution:
    async def test_expiry_awards_player_to_highest_bidder(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        league_repo: FakeLeagueRepository,
        clock: FakeClock,
    ) -> None:
        await open_bidding(engine, db)
        await engine.place_bid(db, S, "u2", 19)
        await engine.place_bid(db, S, "u3", 24)
        clock.advance(31)

        await engine.resolve_expired(db, S)

        assert league_repo.members["m3"].current_budget == 76
        (entry,) = league_repo.owned_by("m3")
        assert entry.player.id == "gk1"
        assert entry.acquisition_price == 24
        assert entry.contract.salary == 2
        assert entry.contract.duration == 3
        lane = session_repo.stored().first_market
        assert lane.stage == "ACKNOWLEDGMENT"
        assert lane.pending_ack.final_price == 24
        assert lane.pending_ack.winner.member_id == "m3"
        assert sorted(lane.pending_ack.members) == ["m1", "m2", "m3", "m4"]
        assert session_repo.recorded[-1]["outcome"] == "SOLD"

    async def test_resolve_before_expiry_is_a_no_op(
        self, engine: AuctionEngine, db: MagicMock, session_repo: FakeSessionRepository
    ) -> None:
        await open_bidding(engine, db)
        await engine.resolve_expired(db, S)
        assert session_repo.stored().first_market.stage == "BIDDING"

    async def test_next_action_resolves_lapsed_timer(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        clock: FakeClock,
    ) -> None:
        await open_bidding(engine, db)
        await engine.place_bid(db, S, "u2", 19)
        clock.advance(45)

        await engine.acknowledge(db, S, "u4")

        ack = session_repo.stored().first_market.pending_ack
        assert ack.acknowledged_members == ["m4"]

    async def test_load_view_resolves_lapsed_timer(
        self, engine: AuctionEngine, db: MagicMock, clock: FakeClock
    ) -> None:
        await open_bidding(engine, db)
        clock.advance(31)

        session, viewer, members = await engine.load_view(db, S, "u2")

        assert session.first_market.stage == "ACKNOWLEDGMENT"
        assert viewer.id == "m2"
        assert len(members) == 4


class TestAcknowledgment:
    async def _resolved(self, engine: AuctionEngine, db: MagicMock, clock: FakeClock) -> None:
        await open_bidding(engine, db)
        await engine.place_bid(db, S, "u2", 19)
        clock.advance(31)
        await engine.resolve_expired(db, S)

    async def test_all_acknowledged_advances_turn(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        clock: FakeClock,
        notifier: RecordingNotifier,
    ) -> None:
        await self._resolved(engine, db, clock)
        for user in ("u1", "u2", "u3"):
            await engine.acknowledge(db, S, user)
        assert session_repo.stored().first_market.stage == "ACKNOWLEDGMENT"

        await engine.acknowledge(db, S, "u4")

        lane = session_repo.stored().first_market
        assert lane.stage == "IDLE"
        assert lane.pending_ack is None
        # m2 filled their only P slot, so the turn skips to m3
        assert lane.current_member_id == "m3"
        assert notifier.events()[-1] == "turn-advanced"

    async def test_duplicate_acknowledgment_rejected(
        self, engine: AuctionEngine, db: MagicMock, clock: FakeClock
    ) -> None:
        await self._resolved(engine, db, clock)
        await engine.acknowledge(db, S, "u2")
        with pytest.raises(InvalidStateError):
            await engine.acknowledge(db, S, "u2")

    async def test_member_joining_later_cannot_acknowledge(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        league_repo: FakeLeagueRepository,
        clock: FakeClock,
    ) -> None:
        await self._resolved(engine, db, clock)
        league_repo.add_member(make_member(5))
        with pytest.raises(ForbiddenError):
            await engine.acknowledge(db, S, "u5")

    async def test_nothing_to_acknowledge(self, engine: AuctionEngine, db: MagicMock) -> None:
        with pytest.raises(InvalidStateError):
            await engine.acknowledge(db, S, "u1")


class TestRoleSequence:
    async def test_role_advances_when_nobody_can_fill_it(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        league_repo: FakeLeagueRepository,
        clock: FakeClock,
        notifier: RecordingNotifier,
    ) -> None:
        for n, member_id in enumerate(("m2", "m3", "m4"), start=3):
            league_repo.players[f"gk{n}"] = Player(f"gk{n}", f"Keeper {n}", "XXX", "P", 1)
            league_repo.give(member_id, f"gk{n}", 1)

        await open_bidding(engine, db)
        await engine.place_bid(db, S, "u1", 20)
        clock.advance(31)
        await engine.resolve_expired(db, S)
        await engine.force_acknowledge_all(db, S, "u1")

        stored = session_repo.stored()
        assert stored.current_role == "D"
        assert stored.first_market.current_member_id == "m1"
        assert "role-advanced" in notifier.events()

    async def test_last_role_exhausted_completes_first_market(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        league_repo: FakeLeagueRepository,
        clock: FakeClock,
    ) -> None:
        session_repo.put(make_session(current_role="A"))
        for member_id in ("m2", "m3", "m4"):
            league_repo.members[member_id].current_budget = 0

        await open_bidding(engine, db, player_id="at1")
        await engine.place_bid(db, S, "u1", 100)
        clock.advance(31)
        await engine.resolve_expired(db, S)
        await engine.force_acknowledge_all(db, S, "u1")

        stored = session_repo.stored()
        assert stored.first_market.completed is True
        assert stored.current_role is None
        assert stored.phase == "CONTRACTS"

    async def test_departed_member_is_pruned_from_turn_order(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        league_repo: FakeLeagueRepository,
    ) -> None:
        session_repo.stored().first_market.current_turn_index = 2
        league_repo.members["m3"].status = "LEFT"

        await engine.nominate(db, S, "u4", player_id="gk1")

        lane = session_repo.stored().first_market
        assert lane.turn_order == ["m1", "m2", "m4"]
        assert lane.current_member_id == "m4"


class TestDepartures:
    async def test_nominator_leaving_mid_round_does_not_skip_next_member(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        league_repo: FakeLeagueRepository,
        clock: FakeClock,
    ) -> None:
        session_repo.put(make_session(turn_order=["m2", "m3", "m4", "m1"]))
        await open_bidding(engine, db, nominator="u2")
        clock.advance(31)
        await engine.resolve_expired(db, S)
        league_repo.members["m2"].status = "LEFT"

        await engine.force_acknowledge_all(db, S, "u1")

        lane = session_repo.stored().first_market
        assert lane.turn_order == ["m3", "m4", "m1"]
        assert lane.current_member_id == "m3"
        assert lane.turn_pointer_moved is False

    async def test_current_member_leaving_while_idle_hands_turn_on(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        league_repo: FakeLeagueRepository,
    ) -> None:
        league_repo.members["m1"].status = "LEFT"

        await engine.nominate(db, S, "u2", player_id="gk1")

        lane = session_repo.stored().first_market
        assert lane.current_member_id == "m2"
        assert lane.turn_pointer_moved is False

    async def test_last_unready_member_leaving_starts_bidding(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        league_repo: FakeLeagueRepository,
        notifier: RecordingNotifier,
    ) -> None:
        await engine.nominate(db, S, "u1", player_id="gk1")
        await engine.confirm_nomination(db, S, "u1")
        await engine.mark_ready(db, S, "u2")
        await engine.mark_ready(db, S, "u3")
        league_repo.members["m4"].status = "LEFT"

        await engine.resolve_expired(db, S)

        lane = session_repo.stored().first_market
        assert lane.stage == "BIDDING"
        assert lane.auction.player.id == "gk1"
        assert notifier.events()[-1] == "auction-started"

    async def test_bid_after_last_unready_member_left_is_accepted(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        league_repo: FakeLeagueRepository,
    ) -> None:
        await engine.nominate(db, S, "u1", player_id="gk1")
        await engine.confirm_nomination(db, S, "u1")
        for user in ("u2", "u3"):
            await engine.mark_ready(db, S, user)
        league_repo.members["m4"].status = "LEFT"

        await engine.place_bid(db, S, "u2", 19)

        assert session_repo.stored().first_market.auction.current_price == 19

    async def test_rejected_action_keeps_the_started_auction(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        league_repo: FakeLeagueRepository,
    ) -> None:
        await engine.nominate(db, S, "u1", player_id="gk1")
        await engine.confirm_nomination(db, S, "u1")
        for user in ("u2", "u3"):
            await engine.mark_ready(db, S, user)
        league_repo.members["m4"].status = "LEFT"

        with pytest.raises(InvalidStateError):
            await engine.mark_ready(db, S, "u2")

        assert session_repo.stored().first_market.stage == "BIDDING"

    async def test_view_starts_stalled_bidding(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        league_repo: FakeLeagueRepository,
    ) -> None:
        await engine.nominate(db, S, "u1", player_id="gk1")
        await engine.confirm_nomination(db, S, "u1")
        for user in ("u2", "u3"):
            await engine.mark_ready(db, S, user)
        league_repo.members["m4"].status = "LEFT"

        session, _, members = await engine.load_view(db, S, "u2")

        assert session.first_market.stage == "BIDDING"
        assert len(members) == 3


class TestFreeze:
    async def test_failed_settlement_freezes_session(
        self,
        engine: AuctionEngine,
        db: MagicMock,
        session_repo: FakeSessionRepository,
        league_repo: FakeLeagueRepository,
        notifier: RecordingNotifier,
    ) -> None:
        await open_bidding(engine, db)
        await engine.place_bid(db, S, "u2", 30)
        league_repo.fail_debit = True

        with pytest.raises(SessionCorruptedError):
            await engine.close_auction(db, S, "u1")

        stored = session_repo.stored()
        assert stored.frozen_reason is not None
        assert stored.first_market.stage == "BIDDING"
        assert league_repo.owned_by("m2") == []
        assert notifier.events()[-1] == "session-frozen"
        db.rollback.assert_awaited()

    async def test_frozen_session_rejects_actions_until_repaired(
        self, engine: AuctionEngine, db: MagicMock, session_repo: FakeSessionRepository
    ) -> None:
        session_repo.stored().frozen_reason = "manual"

        with pytest.raises(SessionFrozenError):
            await engine.nominate(db, S, "u1", player_id="gk1")
        with pytest.raises(ForbiddenError):
            await engine.repair_session(db, S, "u2")

        await engine.repair_session(db, S, "u1", reset_stage=True)

        assert session_repo.stored().frozen_reason is None
        await engine.nominate(db, S, "u1", player_id="gk1")

    async def test_repair_moves_turn_pointer(
        self, engine: AuctionEngine, db: MagicMock, session_repo: FakeSessionRepository
    ) -> None:
        session_repo.stored().frozen_reason = "manual"
        await engine.repair_session(db, S, "u1", turn_index=3)
        assert session_repo.stored().first_market.current_member_id == "m4"

    async def test_missing_nomination_is_a_fatal_inconsistency(
        self, engine: AuctionEngine, db: MagicMock, session_repo: FakeSessionRepository
    ) -> None:
        session = session_repo.stored()
        lane = session.first_market
        lane.stage = "READY_CHECK"
        ctx = _Context(db=db, session=session, actor=None, now=T0, members=[])

        with pytest.raises(SessionCorruptedError) as exc_info:
            engine._start_bidding(ctx, lane)
        assert exc_info.value.is_fatal
        with pytest.raises(SessionCorruptedError):
            engine._ready_targets(ctx, lane)


class TestSessionLocks:
    async def test_lock_is_dropped_once_idle(
        self, engine: AuctionEngine, db: MagicMock
    ) -> None:
        await engine.nominate(db, S, "u1", player_id="gk1")
        assert S not in engine._session_locks

    async def test_waiters_share_one_lock(self, engine: AuctionEngine) -> None:
        first = engine._lock_for(S)
        assert engine._lock_for(S) is first
        assert engine._lock_for("other") is not first
