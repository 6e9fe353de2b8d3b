"""Global enums: must match DB CHECK constraints exactly."""

from enum import Enum


class SessionPhase(str, Enum):
    SETUP = "SETUP"
    FIRST_MARKET = "FIRST_MARKET"
    CONTRACTS = "CONTRACTS"
    RUBATA = "RUBATA"
    SVINCOLATI = "SVINCOLATI"
    PRIZES = "PRIZES"
    COMPLETED = "COMPLETED"


# Phases only move forward, in this order.
PHASE_ORDER: tuple[SessionPhase, ...] = tuple(SessionPhase)


class AuctionVariant(str, Enum):
    """Which market the auction engine is running for."""
    FIRST_MARKET = "FIRST_MARKET"
    RUBATA = "RUBATA"
    SVINCOLATI = "SVINCOLATI"


class AuctionStage(str, Enum):
    IDLE = "IDLE"
    NOMINATION_PENDING = "NOMINATION_PENDING"
    READY_CHECK = "READY_CHECK"
    BIDDING = "BIDDING"
    RESOLUTION = "RESOLUTION"  # transient, never persisted
    ACKNOWLEDGMENT = "ACKNOWLEDGMENT"


class Position(str, Enum):
    """Player roles: portiere, difensore, centrocampista, attaccante."""
    P = "P"
    D = "D"
    C = "C"
    A = "A"


DEFAULT_ROLE_SEQUENCE: tuple[str, ...] = ("P", "D", "C", "A")


class MemberRole(str, Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"


class MemberStatus(str, Enum):
    ACTIVE = "ACTIVE"
    LEFT = "LEFT"


class AuctionMode(str, Enum):
    REMOTE = "REMOTE"
    IN_PRESENCE = "IN_PRESENCE"


class BasePricePolicy(str, Enum):
    QUOTATION = "QUOTATION"
    FIXED = "FIXED"


class AuctionOutcome(str, Enum):
    SOLD = "SOLD"
    NO_BIDS = "NO_BIDS"


class RosterStatus(str, Enum):
    ACTIVE = "ACTIVE"
    RELEASED = "RELEASED"
