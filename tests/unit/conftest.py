"""Fixtures wiring AuctionEngine to the in-memory fakes in auction_fakes."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.fc_auction.domain.timer import TimerAuthority
from src.fc_auction.engine.engine import AuctionEngine
from src.fc_league.domain.models import League, Player
from tests.unit.auction_fakes import (
    LEAGUE_ID,
    FakeClock,
    FakeLeagueRepository,
    FakeSessionRepository,
    RecordingNotifier,
    make_member,
    make_session,
)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def league_repo() -> FakeLeagueRepository:
    roster = [make_member(1, role="ADMIN"), *(make_member(n) for n in (2, 3, 4))]
    members = {m.id: m for m in roster}
    players = {
        p.id: p
        for p in [
            Player("gk1", "Maignan", "MIL", "P", 18),
            Player("gk2", "Sommer", "INT", "P", 15),
            Player("df1", "Bastoni", "INT", "D", 20),
            Player("cc1", "Barella", "INT", "C", 25),
            Player("at1", "Lautaro", "INT", "A", 40),
            Player("at2", "Retired", "XXX", "A", 5, is_active=False),
        ]
    }
    league = League(LEAGUE_ID, "Lega", 1, 1, 1, 1, 100)
    return FakeLeagueRepository(league=league, members=members, players=players)


@pytest.fixture
def session_repo() -> FakeSessionRepository:
    repo = FakeSessionRepository()
    repo.put(make_session())
    return repo


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def audit() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def db() -> MagicMock:
    db = MagicMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    return db


@pytest.fixture
def engine(
    session_repo: FakeSessionRepository,
    league_repo: FakeLeagueRepository,
    notifier: RecordingNotifier,
    clock: FakeClock,
    audit: AsyncMock,
) -> AuctionEngine:
    return AuctionEngine(
        repo=session_repo,
        league_repo=league_repo,
        notifier=notifier,
        timer=TimerAuthority(clock),
        audit=audit,
    )
