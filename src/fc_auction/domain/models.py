"""Domain models for fc_auction: dataclasses persisted as typed JSON lanes.

A MarketSession owns one AuctionLane per market variant. Only the lane of
the current phase is live. Within a lane exactly one of these holds:
idle, nomination pending, bidding active, acknowledgment pending.
"""

from dataclasses import dataclass, field
from datetime import datetime

from src.fc_common.enums import AuctionStage, AuctionVariant, SessionPhase
from src.fc_common.errors import InvalidStateError


@dataclass
class PlayerRef:
    id: str
    name: str
    team: str
    position: str
    quotation: int
    age: int | None = None


@dataclass
class Bidder:
    member_id: str
    username: str
    team_name: str | None = None


@dataclass
class Bid:
    id: str
    bidder: Bidder
    amount: int
    placed_at: datetime


@dataclass
class Nomination:
    player: PlayerRef
    nominator_id: str
    base_price: int
    nominated_at: datetime
    nominator_confirmed: bool = False
    # rubata: the roster entry on the block and its owner
    roster_entry_id: str | None = None
    seller_id: str | None = None


@dataclass
class Auction:
    id: str
    variant: str
    player: PlayerRef
    nominator_id: str
    base_price: int
    current_price: int
    timer_seconds: int
    started_at: datetime
    timer_expires_at: datetime | None = None
    paused_remaining_seconds: int | None = None
    seller_id: str | None = None
    roster_entry_id: str | None = None
    bids: list[Bid] = field(default_factory=list)  # most recent first

    @property
    def winning_bid(self) -> Bid | None:
        return self.bids[0] if self.bids else None

    @property
    def is_paused(self) -> bool:
        return self.paused_remaining_seconds is not None


@dataclass
class PendingAcknowledgment:
    auction_id: str
    player: PlayerRef
    final_price: int | None
    winner: Bidder | None
    members: list[str]  # active members captured when the auction resolved
    acknowledged_members: list[str] = field(default_factory=list)
    seller_id: str | None = None

    @property
    def pending_members(self) -> list[str]:
        return [m for m in self.members if m not in self.acknowledged_members]

    @property
    def is_complete(self) -> bool:
        return not self.pending_members


@dataclass
class AuctionLane:
    variant: str
    turn_order: list[str] = field(default_factory=list)
    turn_order_seed: int | None = None
    current_turn_index: int = 0
    stage: str = AuctionStage.IDLE.value
    nomination: Nomination | None = None
    ready_members: list[str] = field(default_factory=list)
    auction: Auction | None = None
    pending_ack: PendingAcknowledgment | None = None
    board: list[str] = field(default_factory=list)
    passed_members: list[str] = field(default_factory=list)
    finished_members: list[str] = field(default_factory=list)
    completed: bool = False
    # The current member left mid-round and the pointer already sits on the next one
    turn_pointer_moved: bool = False

    @property
    def current_member_id(self) -> str | None:
        if not self.turn_order:
            return None
        return self.turn_order[self.current_turn_index]

    def consistency_error(self) -> str | None:
        """Describe the first broken structural invariant, if any."""
        if self.turn_order and not 0 <= self.current_turn_index < len(self.turn_order):
            return (
                f"{self.variant} turn index {self.current_turn_index} outside "
                f"order of {len(self.turn_order)}"
            )
        expected = {
            AuctionStage.IDLE.value: (False, False, False),
            AuctionStage.NOMINATION_PENDING.value: (True, False, False),
            AuctionStage.READY_CHECK.value: (True, False, False),
            AuctionStage.BIDDING.value: (False, True, False),
            AuctionStage.ACKNOWLEDGMENT.value: (False, False, True),
        }.get(self.stage)
        if expected is None:
            return f"{self.variant} lane in non-persistable stage {self.stage}"
        actual = (
            self.nomination is not None,
            self.auction is not None,
            self.pending_ack is not None,
        )
        if actual != expected:
            return f"{self.variant} lane stage {self.stage} does not match its contents"
        if self.auction is not None:
            running = self.auction.timer_expires_at is not None
            if running == self.auction.is_paused:
                return f"{self.variant} auction {self.auction.id} has an inconsistent timer"
            expected_price = (
                self.auction.bids[0].amount if self.auction.bids else self.auction.base_price
            )
            if self.auction.current_price != expected_price:
                return f"{self.variant} auction {self.auction.id} price drifted from its bids"
        return None


_PHASE_LANES: dict[str, str] = {
    SessionPhase.FIRST_MARKET.value: AuctionVariant.FIRST_MARKET.value,
    SessionPhase.RUBATA.value: AuctionVariant.RUBATA.value,
    SessionPhase.SVINCOLATI.value: AuctionVariant.SVINCOLATI.value,
}


@dataclass
class MarketSession:
    id: str
    league_id: str
    phase: str
    current_role: str | None
    role_sequence: list[str]
    auction_timer_seconds: int
    auction_mode: str
    base_price_policy: str
    first_market: AuctionLane
    rubata: AuctionLane
    svincolati: AuctionLane
    frozen_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def active_variant(self) -> str | None:
        return _PHASE_LANES.get(self.phase)

    def lane(self, variant: str) -> AuctionLane:
        return {
            AuctionVariant.FIRST_MARKET.value: self.first_market,
            AuctionVariant.RUBATA.value: self.rubata,
            AuctionVariant.SVINCOLATI.value: self.svincolati,
        }[variant]

    def active_lane(self) -> AuctionLane:
        """Lane of the current phase; raises when the phase runs no auctions."""
        variant = self.active_variant
        if variant is None:
            raise InvalidStateError(f"phase {self.phase} has no auction room")
        return self.lane(variant)

    def lanes(self) -> list[AuctionLane]:
        return [self.first_market, self.rubata, self.svincolati]


@dataclass
class ReadyStatus:
    """Ready-check view for one viewer."""

    player: PlayerRef
    nominator_id: str
    nominator_username: str
    user_is_nominator: bool
    nominator_confirmed: bool
    ready_members: list[str]
    pending_members: list[str]
    ready_count: int
    total_members: int
    user_is_ready: bool


@dataclass
class AuctionEvent:
    """One notification to fan out after commit."""

    name: str
    payload: dict[str, object]
