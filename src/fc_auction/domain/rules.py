"""Per-variant auction rules.

The engine runs one state machine for every market; these strategy
objects answer the questions that differ between markets: what may be
nominated and at what base price, who may bid, who may take a turn and
how a won auction is settled.
"""

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from src.fc_auction.domain.models import (
    Auction,
    AuctionLane,
    MarketSession,
    Nomination,
    PlayerRef,
)
from src.fc_common.enums import AuctionVariant, BasePricePolicy, RosterStatus
from src.fc_common.errors import (
    ForbiddenError,
    PlayerNotFoundError,
    PlayerUnavailableError,
    RoleSlotFullError,
    SessionCorruptedError,
)
from src.fc_league.domain.contracts import rubata_base_price
from src.fc_league.domain.models import Member, Player
from src.fc_league.domain.repository import LeagueRepositoryProtocol

# a member needs at least this much budget to take a nomination turn
MIN_NOMINATION_BUDGET = 1


def base_price_for(policy: str, quotation: int) -> int:
    if policy == BasePricePolicy.FIXED.value:
        return 1
    return max(1, quotation)


def player_ref(player: Player) -> PlayerRef:
    return PlayerRef(
        id=player.id,
        name=player.name,
        team=player.team,
        position=player.position,
        quotation=player.quotation,
        age=player.age,
    )


class VariantRules:
    variant: str = ""

    async def build_nomination(
        self,
        db: AsyncSession,
        league: LeagueRepositoryProtocol,
        session: MarketSession,
        lane: AuctionLane,
        nominator: Member,
        now: datetime,
        player_id: str | None = None,
        roster_entry_id: str | None = None,
    ) -> Nomination:
        raise NotImplementedError

    def check_bidder(self, lane: AuctionLane, auction: Auction, member: Member) -> None:
        """Raise when ``member`` may not bid in this market."""

    async def is_eligible_nominator(
        self,
        db: AsyncSession,
        league: LeagueRepositoryProtocol,
        session: MarketSession,
        lane: AuctionLane,
        member: Member,
    ) -> bool:
        return member.current_budget >= MIN_NOMINATION_BUDGET

    async def award(
        self,
        db: AsyncSession,
        league: LeagueRepositoryProtocol,
        session: MarketSession,
        auction: Auction,
        winner_id: str,
        price: int,
    ) -> None:
        raise NotImplementedError

    async def _free_agent(
        self,
        db: AsyncSession,
        league: LeagueRepositoryProtocol,
        session: MarketSession,
        player_id: str | None,
    ) -> Player:
        if not player_id:
            raise PlayerUnavailableError("player_id is required")
        player = await league.get_player(db, player_id)
        if player is None:
            raise PlayerNotFoundError(player_id)
        if not player.is_active:
            raise PlayerUnavailableError(f"{player.name} is no longer listed")
        if not await league.is_player_available(db, session.league_id, player.id):
            raise PlayerUnavailableError(f"{player.name} already belongs to a roster")
        return player

    async def _buy_outright(
        self,
        db: AsyncSession,
        league: LeagueRepositoryProtocol,
        session: MarketSession,
        auction: Auction,
        winner_id: str,
        price: int,
    ) -> None:
        if await league.debit_budget(db, winner_id, price) is None:
            raise SessionCorruptedError(
                session.id, f"winner {winner_id} cannot cover final price {price}"
            )
        player = Player(
            id=auction.player.id,
            name=auction.player.name,
            team=auction.player.team,
            position=auction.player.position,
            quotation=auction.player.quotation,
            age=auction.player.age,
        )
        await league.create_roster_entry(
            db, session.league_id, winner_id, player, price, self.variant
        )


class FirstMarketRules(VariantRules):
    """Turn-based, role by role; every nominee is an unowned player of the current role."""

    variant = AuctionVariant.FIRST_MARKET.value

    async def build_nomination(
        self,
        db: AsyncSession,
        league: LeagueRepositoryProtocol,
        session: MarketSession,
        lane: AuctionLane,
        nominator: Member,
        now: datetime,
        player_id: str | None = None,
        roster_entry_id: str | None = None,
    ) -> Nomination:
        player = await self._free_agent(db, league, session, player_id)
        if session.current_role and player.position != session.current_role:
            raise PlayerUnavailableError(
                f"{player.name} plays {player.position}, current role is {session.current_role}"
            )
        slot = await league.get_role_slot(db, nominator.id, player.position)
        if slot.is_full:
            raise RoleSlotFullError(player.position)
        return Nomination(
            player=player_ref(player),
            nominator_id=nominator.id,
            base_price=base_price_for(session.base_price_policy, player.quotation),
            nominated_at=now,
        )

    async def is_eligible_nominator(
        self,
        db: AsyncSession,
        league: LeagueRepositoryProtocol,
        session: MarketSession,
        lane: AuctionLane,
        member: Member,
    ) -> bool:
        if member.current_budget < MIN_NOMINATION_BUDGET or session.current_role is None:
            return False
        slot = await league.get_role_slot(db, member.id, session.current_role)
        return not slot.is_full

    async def award(
        self,
        db: AsyncSession,
        league: LeagueRepositoryProtocol,
        session: MarketSession,
        auction: Auction,
        winner_id: str,
        price: int,
    ) -> None:
        await self._buy_outright(db, league, session, auction, winner_id, price)


class RubataRules(VariantRules):
    """Nominees are other managers' players; the owner is paid and cannot bid."""

    variant = AuctionVariant.RUBATA.value

    async def build_nomination(
        self,
        db: AsyncSession,
        league: LeagueRepositoryProtocol,
        session: MarketSession,
        lane: AuctionLane,
        nominator: Member,
        now: datetime,
        player_id: str | None = None,
        roster_entry_id: str | None = None,
    ) -> Nomination:
        if not roster_entry_id:
            raise PlayerUnavailableError("roster_entry_id is required")
        entry = await league.get_roster_entry(db, roster_entry_id)
        if (
            entry is None
            or entry.league_id != session.league_id
            or entry.status != RosterStatus.ACTIVE.value
        ):
            raise PlayerUnavailableError(f"roster entry {roster_entry_id} is not on a roster")
        if entry.member_id == nominator.id:
            raise PlayerUnavailableError("you cannot put up your own player")
        if entry.id in lane.board:
            raise PlayerUnavailableError(f"{entry.player.name} was already offered")
        if entry.contract is None:
            raise PlayerUnavailableError(f"{entry.player.name} has no contract")
        return Nomination(
            player=player_ref(entry.player),
            nominator_id=nominator.id,
            base_price=rubata_base_price(entry.contract),
            nominated_at=now,
            roster_entry_id=entry.id,
            seller_id=entry.member_id,
        )

    def check_bidder(self, lane: AuctionLane, auction: Auction, member: Member) -> None:
        if member.id == auction.seller_id:
            raise ForbiddenError("The owner cannot bid on their own player")

    async def award(
        self,
        db: AsyncSession,
        league: LeagueRepositoryProtocol,
        session: MarketSession,
        auction: Auction,
        winner_id: str,
        price: int,
    ) -> None:
        if auction.seller_id is None or auction.roster_entry_id is None:
            raise SessionCorruptedError(session.id, f"rubata auction {auction.id} has no seller")
        if await league.debit_budget(db, winner_id, price) is None:
            raise SessionCorruptedError(
                session.id, f"winner {winner_id} cannot cover final price {price}"
            )
        await league.credit_budget(db, auction.seller_id, price)
        await league.transfer_roster_entry(db, auction.roster_entry_id, winner_id, price)


class SvincolatiRules(VariantRules):
    """Free agents; members may pass a turn or declare themselves finished."""

    variant = AuctionVariant.SVINCOLATI.value

    async def build_nomination(
        self,
        db: AsyncSession,
        league: LeagueRepositoryProtocol,
        session: MarketSession,
        lane: AuctionLane,
        nominator: Member,
        now: datetime,
        player_id: str | None = None,
        roster_entry_id: str | None = None,
    ) -> Nomination:
        player = await self._free_agent(db, league, session, player_id)
        return Nomination(
            player=player_ref(player),
            nominator_id=nominator.id,
            base_price=base_price_for(session.base_price_policy, player.quotation),
            nominated_at=now,
        )

    def check_bidder(self, lane: AuctionLane, auction: Auction, member: Member) -> None:
        if member.id in lane.finished_members:
            raise ForbiddenError("You declared yourself finished for this market")

    async def is_eligible_nominator(
        self,
        db: AsyncSession,
        league: LeagueRepositoryProtocol,
        session: MarketSession,
        lane: AuctionLane,
        member: Member,
    ) -> bool:
        return (
            member.current_budget >= MIN_NOMINATION_BUDGET
            and member.id not in lane.passed_members
            and member.id not in lane.finished_members
        )

    async def award(
        self,
        db: AsyncSession,
        league: LeagueRepositoryProtocol,
        session: MarketSession,
        auction: Auction,
        winner_id: str,
        price: int,
    ) -> None:
        await self._buy_outright(db, league, session, auction, winner_id, price)


_RULES: dict[str, VariantRules] = {
    r.variant: r for r in (FirstMarketRules(), RubataRules(), SvincolatiRules())
}


def rules_for(variant: str) -> VariantRules:
    return _RULES[variant]
