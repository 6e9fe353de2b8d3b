"""LeagueRepository: concrete implementation of LeagueRepositoryProtocol.

All queries use raw text() SQL (no ORM). Budget updates are conditional
UPDATEs so a budget can never go negative even under concurrent writers.
"""

import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.fc_common.enums import RosterStatus
from src.fc_common.errors import (
    LeagueNotFoundError,
    MemberNotFoundError,
    PlayerUnavailableError,
)
from src.fc_common.id_generator import generate_id
from src.fc_league.domain.contracts import default_terms
from src.fc_league.domain.models import Contract, League, Member, Player, RoleSlot, RosterEntry

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

_GET_LEAGUE_SQL = text("""
    SELECT id, name, goalkeeper_slots, defender_slots,
           midfielder_slots, forward_slots, initial_budget
    FROM leagues
    WHERE id = :league_id
""")

_MEMBER_COLUMNS = """
    m.id, m.league_id, m.user_id, COALESCE(u.display_name, u.username) AS username, m.team_name,
    m.role, m.status, m.current_budget
"""

_LIST_ACTIVE_MEMBERS_SQL = text(f"""
    SELECT {_MEMBER_COLUMNS}
    FROM league_members m
    JOIN users u ON u.id = m.user_id
    WHERE m.league_id = :league_id AND m.status = 'ACTIVE'
    ORDER BY m.joined_at ASC, m.id ASC
""")

_GET_MEMBER_SQL = text(f"""
    SELECT {_MEMBER_COLUMNS}
    FROM league_members m
    JOIN users u ON u.id = m.user_id
    WHERE m.id = :member_id
""")

_GET_MEMBER_BY_USER_SQL = text(f"""
    SELECT {_MEMBER_COLUMNS}
    FROM league_members m
    JOIN users u ON u.id = m.user_id
    WHERE m.league_id = :league_id AND m.user_id = CAST(:user_id AS UUID)
""")

_GET_BUDGET_SQL = text("""
    SELECT current_budget FROM league_members WHERE id = :member_id
""")

_DEBIT_BUDGET_SQL = text("""
    UPDATE league_members
    SET current_budget = current_budget - :amount,
        updated_at = NOW()
    WHERE id = :member_id AND current_budget >= :amount
    RETURNING current_budget
""")

_CREDIT_BUDGET_SQL = text("""
    UPDATE league_members
    SET current_budget = current_budget + :amount,
        updated_at = NOW()
    WHERE id = :member_id
    RETURNING current_budget
""")

_SLOT_COUNTS_SQL = text("""
    SELECT p.position, COUNT(*) AS filled
    FROM player_rosters r
    JOIN players p ON p.id = r.player_id
    WHERE r.league_member_id = :member_id AND r.status = 'ACTIVE'
    GROUP BY p.position
""")

_GET_MEMBER_LEAGUE_SQL = text("""
    SELECT l.id, l.name, l.goalkeeper_slots, l.defender_slots,
           l.midfielder_slots, l.forward_slots, l.initial_budget
    FROM league_members m
    JOIN leagues l ON l.id = m.league_id
    WHERE m.id = :member_id
""")

_GET_PLAYER_SQL = text("""
    SELECT id, name, team, position, quotation, age, is_active
    FROM players
    WHERE id = :player_id
""")

_PLAYER_OWNED_SQL = text("""
    SELECT 1
    FROM player_rosters
    WHERE league_id = :league_id AND player_id = :player_id AND status = 'ACTIVE'
    LIMIT 1
""")

_COUNT_AVAILABLE_SQL = text("""
    SELECT COUNT(*) AS n
    FROM players p
    WHERE p.is_active
      AND NOT EXISTS (
          SELECT 1 FROM player_rosters r
          WHERE r.league_id = :league_id AND r.player_id = p.id AND r.status = 'ACTIVE'
      )
""")

_GET_ROSTER_ENTRY_SQL = text("""
    SELECT r.id, r.league_id, r.league_member_id, r.acquisition_price,
           r.acquisition_type, r.status, r.acquired_at,
           p.id AS player_id, p.name AS player_name, p.team AS player_team,
           p.position AS player_position, p.quotation AS player_quotation,
           p.age AS player_age, p.is_active AS player_is_active,
           c.id AS contract_id, c.salary, c.duration, c.rescission_clause
    FROM player_rosters r
    JOIN players p ON p.id = r.player_id
    LEFT JOIN player_contracts c ON c.roster_id = r.id
    WHERE r.id = :entry_id
""")

_INSERT_ROSTER_SQL = text("""
    INSERT INTO player_rosters
        (id, league_id, league_member_id, player_id,
         acquisition_price, acquisition_type, status)
    VALUES (:id, :league_id, :member_id, :player_id,
            :price, :acquisition_type, 'ACTIVE')
""")

_INSERT_CONTRACT_SQL = text("""
    INSERT INTO player_contracts (id, roster_id, salary, duration, rescission_clause)
    VALUES (:id, :roster_id, :salary, :duration, :clause)
""")

_TRANSFER_ROSTER_SQL = text("""
    UPDATE player_rosters
    SET league_member_id = :to_member_id,
        acquisition_price = :price,
        acquisition_type = 'RUBATA',
        acquired_at = NOW(),
        updated_at = NOW()
    WHERE id = :entry_id AND status = 'ACTIVE'
""")

# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_league(row: Any) -> League:
    return League(
        id=row.id,
        name=row.name,
        goalkeeper_slots=row.goalkeeper_slots,
        defender_slots=row.defender_slots,
        midfielder_slots=row.midfielder_slots,
        forward_slots=row.forward_slots,
        initial_budget=row.initial_budget,
    )


def _row_to_member(row: Any) -> Member:
    return Member(
        id=row.id,
        league_id=row.league_id,
        user_id=str(row.user_id),
        username=row.username,
        team_name=row.team_name,
        role=row.role,
        status=row.status,
        current_budget=row.current_budget,
    )


def _row_to_player(row: Any) -> Player:
    return Player(
        id=row.id,
        name=row.name,
        team=row.team,
        position=row.position,
        quotation=row.quotation,
        age=row.age,
        is_active=row.is_active,
    )


def _row_to_roster_entry(row: Any) -> RosterEntry:
    contract = None
    if row.contract_id is not None:
        contract = Contract(
            id=row.contract_id,
            roster_entry_id=row.id,
            salary=row.salary,
            duration=row.duration,
            rescission_clause=row.rescission_clause,
        )
    return RosterEntry(
        id=row.id,
        league_id=row.league_id,
        member_id=row.league_member_id,
        player=Player(
            id=row.player_id,
            name=row.player_name,
            team=row.player_team,
            position=row.player_position,
            quotation=row.player_quotation,
            age=row.player_age,
            is_active=row.player_is_active,
        ),
        acquisition_price=row.acquisition_price,
        acquisition_type=row.acquisition_type,
        status=row.status,
        contract=contract,
        acquired_at=row.acquired_at,
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class LeagueRepository:
    async def get_league(self, db: AsyncSession, league_id: str) -> League | None:
        row = (await db.execute(_GET_LEAGUE_SQL, {"league_id": league_id})).fetchone()
        return _row_to_league(row) if row else None

    async def list_active_members(self, db: AsyncSession, league_id: str) -> list[Member]:
        rows = (
            await db.execute(_LIST_ACTIVE_MEMBERS_SQL, {"league_id": league_id})
        ).fetchall()
        return [_row_to_member(r) for r in rows]

    async def get_member(self, db: AsyncSession, member_id: str) -> Member | None:
        row = (await db.execute(_GET_MEMBER_SQL, {"member_id": member_id})).fetchone()
        return _row_to_member(row) if row else None

    async def get_member_by_user(
        self, db: AsyncSession, league_id: str, user_id: str
    ) -> Member | None:
        row = (
            await db.execute(
                _GET_MEMBER_BY_USER_SQL, {"league_id": league_id, "user_id": user_id}
            )
        ).fetchone()
        return _row_to_member(row) if row else None

    async def get_budget(self, db: AsyncSession, member_id: str) -> int:
        row = (await db.execute(_GET_BUDGET_SQL, {"member_id": member_id})).fetchone()
        if row is None:
            raise MemberNotFoundError(member_id)
        return int(row.current_budget)

    async def debit_budget(self, db: AsyncSession, member_id: str, amount: int) -> int | None:
        row = (
            await db.execute(_DEBIT_BUDGET_SQL, {"member_id": member_id, "amount": amount})
        ).fetchone()
        return int(row.current_budget) if row else None

    async def credit_budget(self, db: AsyncSession, member_id: str, amount: int) -> int:
        row = (
            await db.execute(_CREDIT_BUDGET_SQL, {"member_id": member_id, "amount": amount})
        ).fetchone()
        if row is None:
            raise MemberNotFoundError(member_id)
        return int(row.current_budget)

    async def get_role_slots(self, db: AsyncSession, member_id: str) -> dict[str, RoleSlot]:
        league_row = (
            await db.execute(_GET_MEMBER_LEAGUE_SQL, {"member_id": member_id})
        ).fetchone()
        if league_row is None:
            raise LeagueNotFoundError(f"member:{member_id}")
        league = _row_to_league(league_row)
        counts = {
            r.position: int(r.filled)
            for r in (await db.execute(_SLOT_COUNTS_SQL, {"member_id": member_id})).fetchall()
        }
        return {
            pos: RoleSlot(position=pos, filled=counts.get(pos, 0), total=league.slots_for(pos))
            for pos in ("P", "D", "C", "A")
        }

    async def get_role_slot(self, db: AsyncSession, member_id: str, position: str) -> RoleSlot:
        return (await self.get_role_slots(db, member_id))[position]

    async def get_player(self, db: AsyncSession, player_id: str) -> Player | None:
        row = (await db.execute(_GET_PLAYER_SQL, {"player_id": player_id})).fetchone()
        return _row_to_player(row) if row else None

    async def is_player_available(
        self, db: AsyncSession, league_id: str, player_id: str
    ) -> bool:
        row = (
            await db.execute(
                _PLAYER_OWNED_SQL, {"league_id": league_id, "player_id": player_id}
            )
        ).fetchone()
        return row is None

    async def count_available_players(self, db: AsyncSession, league_id: str) -> int:
        row = (await db.execute(_COUNT_AVAILABLE_SQL, {"league_id": league_id})).fetchone()
        return int(row.n) if row else 0

    async def get_roster_entry(self, db: AsyncSession, entry_id: str) -> RosterEntry | None:
        row = (await db.execute(_GET_ROSTER_ENTRY_SQL, {"entry_id": entry_id})).fetchone()
        return _row_to_roster_entry(row) if row else None

    async def create_roster_entry(
        self,
        db: AsyncSession,
        league_id: str,
        member_id: str,
        player: Player,
        price: int,
        acquisition_type: str,
    ) -> RosterEntry:
        """Insert the roster row and its default contract in the caller's transaction."""
        entry_id = generate_id()
        await db.execute(
            _INSERT_ROSTER_SQL,
            {
                "id": entry_id,
                "league_id": league_id,
                "member_id": member_id,
                "player_id": player.id,
                "price": price,
                "acquisition_type": acquisition_type,
            },
        )
        salary, duration, clause = default_terms(price)
        contract = Contract(
            id=generate_id(),
            roster_entry_id=entry_id,
            salary=salary,
            duration=duration,
            rescission_clause=clause,
        )
        await db.execute(
            _INSERT_CONTRACT_SQL,
            {
                "id": contract.id,
                "roster_id": entry_id,
                "salary": salary,
                "duration": duration,
                "clause": clause,
            },
        )
        logger.debug(
            "roster entry %s: player %s -> member %s at %d (salary=%d clause=%d)",
            entry_id, player.id, member_id, price, salary, clause,
        )
        return RosterEntry(
            id=entry_id,
            league_id=league_id,
            member_id=member_id,
            player=player,
            acquisition_price=price,
            acquisition_type=acquisition_type,
            status=RosterStatus.ACTIVE.value,
            contract=contract,
        )

    async def transfer_roster_entry(
        self, db: AsyncSession, entry_id: str, to_member_id: str, price: int
    ) -> RosterEntry:
        """Move an active roster entry (and its contract) to another member."""
        result = await db.execute(
            _TRANSFER_ROSTER_SQL,
            {"entry_id": entry_id, "to_member_id": to_member_id, "price": price},
        )
        entry = None
        if result.rowcount == 1:  # type: ignore[attr-defined]
            entry = await self.get_roster_entry(db, entry_id)
        if entry is None:
            raise PlayerUnavailableError(f"roster entry {entry_id} is no longer active")
        return entry
