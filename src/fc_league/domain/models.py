"""Domain models for fc_league: pure dataclasses, no business logic."""

from dataclasses import dataclass
from datetime import datetime

from src.fc_common.enums import MemberRole, MemberStatus


@dataclass
class League:
    id: str
    name: str
    goalkeeper_slots: int
    defender_slots: int
    midfielder_slots: int
    forward_slots: int
    initial_budget: int

    def slots_for(self, position: str) -> int:
        return {
            "P": self.goalkeeper_slots,
            "D": self.defender_slots,
            "C": self.midfielder_slots,
            "A": self.forward_slots,
        }[position]


@dataclass
class Member:
    id: str
    league_id: str
    user_id: str
    username: str
    team_name: str | None
    role: str
    status: str
    current_budget: int

    @property
    def is_admin(self) -> bool:
        return self.role == MemberRole.ADMIN.value

    @property
    def is_active(self) -> bool:
        return self.status == MemberStatus.ACTIVE.value


@dataclass
class RoleSlot:
    """Roster capacity of one member for one position."""

    position: str
    filled: int
    total: int

    @property
    def is_full(self) -> bool:
        return self.filled >= self.total

    @property
    def open(self) -> int:
        return max(0, self.total - self.filled)


@dataclass
class Player:
    id: str
    name: str
    team: str
    position: str
    quotation: int
    age: int | None = None
    is_active: bool = True


@dataclass
class Contract:
    id: str
    roster_entry_id: str
    salary: int
    duration: int
    rescission_clause: int


@dataclass
class RosterEntry:
    id: str
    league_id: str
    member_id: str
    player: Player
    acquisition_price: int
    acquisition_type: str
    status: str
    contract: Contract | None
    acquired_at: datetime | None = None
