"""Unit tests for fc_auction.domain.timer."""

from datetime import timedelta

from src.fc_auction.domain.timer import TimerAuthority, remaining
from tests.unit.auction_fakes import T0, FakeClock


class TestRemaining:
    def test_rounds_partial_seconds_up(self) -> None:
        assert remaining(T0 + timedelta(seconds=4, milliseconds=100), T0) == 5

    def test_exact_seconds(self) -> None:
        assert remaining(T0 + timedelta(seconds=30), T0) == 30

    def test_never_negative(self) -> None:
        assert remaining(T0, T0 + timedelta(seconds=3)) == 0


class TestTimerAuthority:
    def test_start_uses_server_clock(self) -> None:
        timer = TimerAuthority(FakeClock())
        assert timer.start(30) == T0 + timedelta(seconds=30)

    def test_reset_is_a_fresh_window(self) -> None:
        clock = FakeClock()
        timer = TimerAuthority(clock)
        timer.start(30)
        clock.advance(25)
        assert timer.reset(30) == T0 + timedelta(seconds=55)

    def test_expiry_boundary_is_inclusive(self) -> None:
        clock = FakeClock()
        timer = TimerAuthority(clock)
        expires_at = timer.start(10)
        clock.advance(9.999)
        assert timer.is_expired(expires_at) is False
        clock.advance(0.001)
        assert timer.is_expired(expires_at) is True

    def test_missing_deadline_never_expires(self) -> None:
        timer = TimerAuthority(FakeClock())
        assert timer.is_expired(None) is False
        assert timer.remaining(None) == 0

    def test_pause_keeps_at_least_one_second(self) -> None:
        clock = FakeClock()
        timer = TimerAuthority(clock)
        expires_at = timer.start(10)
        clock.advance(3)
        assert timer.pause(expires_at) == 7
        clock.advance(20)
        assert timer.pause(expires_at) == 1

    def test_resume_restarts_from_remaining(self) -> None:
        clock = FakeClock()
        timer = TimerAuthority(clock)
        clock.advance(100)
        assert timer.resume(7) == T0 + timedelta(seconds=107)
