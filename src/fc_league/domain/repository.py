"""League repository Protocol.

The auction engine only reaches membership, budgets and rosters through
this Protocol; every call runs on the caller's AsyncSession so it joins
the engine's transaction.
"""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.fc_league.domain.models import League, Member, Player, RoleSlot, RosterEntry


class LeagueRepositoryProtocol(Protocol):
    async def get_league(self, db: AsyncSession, league_id: str) -> League | None: ...

    async def list_active_members(self, db: AsyncSession, league_id: str) -> list[Member]: ...

    async def get_member(self, db: AsyncSession, member_id: str) -> Member | None: ...

    async def get_member_by_user(
        self, db: AsyncSession, league_id: str, user_id: str
    ) -> Member | None: ...

    async def get_budget(self, db: AsyncSession, member_id: str) -> int: ...

    async def debit_budget(self, db: AsyncSession, member_id: str, amount: int) -> int | None:
        """Return the new budget, or None when the debit would go negative."""
        ...

    async def credit_budget(self, db: AsyncSession, member_id: str, amount: int) -> int: ...

    async def get_role_slots(self, db: AsyncSession, member_id: str) -> dict[str, RoleSlot]: ...

    async def get_role_slot(
        self, db: AsyncSession, member_id: str, position: str
    ) -> RoleSlot: ...

    async def get_player(self, db: AsyncSession, player_id: str) -> Player | None: ...

    async def is_player_available(
        self, db: AsyncSession, league_id: str, player_id: str
    ) -> bool: ...

    async def count_available_players(self, db: AsyncSession, league_id: str) -> int: ...

    async def get_roster_entry(self, db: AsyncSession, entry_id: str) -> RosterEntry | None: ...

    async def create_roster_entry(
        self,
        db: AsyncSession,
        league_id: str,
        member_id: str,
        player: Player,
        price: int,
        acquisition_type: str,
    ) -> RosterEntry: ...

    async def transfer_roster_entry(
        self, db: AsyncSession, entry_id: str, to_member_id: str, price: int
    ) -> RosterEntry: ...
