"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Auth/User
  2xxx: League / membership
  3xxx: Market session
  4xxx: Auction (40xx validation, 41xx authorization, 42xx state conflict)
  9xxx: System

Each error also carries a category. Validation, authorization and conflict
errors are returned to the caller only. Fatal errors freeze the session.
"""

VALIDATION = "validation"
AUTHORIZATION = "authorization"
CONFLICT = "conflict"
FATAL = "fatal"
SYSTEM = "system"


class AppError(Exception):
    """Base application error."""

    category: str = SYSTEM

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)

    @property
    def is_fatal(self) -> bool:
        return self.category == FATAL


# --- 1xxx: Auth/User ---

class UsernameExistsError(AppError):
    category = VALIDATION

    def __init__(self) -> None:
        super().__init__(1001, "Username already exists", 409)


class EmailExistsError(AppError):
    category = VALIDATION

    def __init__(self) -> None:
        super().__init__(1002, "Email already exists", 409)


class InvalidCredentialsError(AppError):
    category = AUTHORIZATION

    def __init__(self) -> None:
        super().__init__(1003, "Invalid username or password", 401)


class AccountDisabledError(AppError):
    category = AUTHORIZATION

    def __init__(self) -> None:
        super().__init__(1004, "Account is disabled", 403)


class InvalidRefreshTokenError(AppError):
    category = AUTHORIZATION

    def __init__(self) -> None:
        super().__init__(1005, "Refresh token is invalid or expired", 401)


# --- 2xxx: League / membership ---

class NotLeagueMemberError(AppError):
    category = AUTHORIZATION

    def __init__(self, league_id: str) -> None:
        super().__init__(2001, f"Not an active member of league {league_id}", 403)


class MemberNotFoundError(AppError):
    category = VALIDATION

    def __init__(self, member_id: str) -> None:
        super().__init__(2002, f"Member not found: {member_id}", 404)


class LeagueNotFoundError(AppError):
    category = VALIDATION

    def __init__(self, league_id: str) -> None:
        super().__init__(2003, f"League not found: {league_id}", 404)


class PlayerNotFoundError(AppError):
    category = VALIDATION

    def __init__(self, player_id: str) -> None:
        super().__init__(2004, f"Player not found: {player_id}", 404)


# --- 3xxx: Market session ---

class SessionNotFoundError(AppError):
    category = VALIDATION

    def __init__(self, session_id: str) -> None:
        super().__init__(3001, f"Market session not found: {session_id}", 404)


class SessionFrozenError(AppError):
    category = CONFLICT

    def __init__(self, session_id: str, reason: str) -> None:
        super().__init__(
            3002, f"Market session {session_id} is frozen pending repair: {reason}", 423
        )


class SessionCorruptedError(AppError):
    category = FATAL

    def __init__(self, session_id: str, detail: str) -> None:
        super().__init__(3003, f"Market session {session_id} is inconsistent: {detail}", 500)


class EmptyTurnOrderError(AppError):
    category = FATAL

    def __init__(self) -> None:
        super().__init__(3004, "Turn order is empty", 500)


class InvalidTurnOrderError(AppError):
    category = VALIDATION

    def __init__(self, detail: str) -> None:
        super().__init__(3005, f"Invalid turn order: {detail}", 422)


class PhaseTransitionError(AppError):
    category = CONFLICT

    def __init__(self, current: str, target: str) -> None:
        super().__init__(3006, f"Cannot move session from {current} to {target}", 409)


# --- 40xx: Auction validation ---

class BidTooLowError(AppError):
    category = VALIDATION

    def __init__(self, amount: int, current_price: int) -> None:
        super().__init__(
            4001, f"Bid {amount} must be greater than current price {current_price}", 422
        )


class InsufficientBudgetError(AppError):
    category = VALIDATION

    def __init__(self, amount: int, available: int) -> None:
        super().__init__(
            4002, f"Insufficient budget: bid {amount}, available {available}", 422
        )


class RoleSlotFullError(AppError):
    category = VALIDATION

    def __init__(self, position: str) -> None:
        super().__init__(4003, f"No free roster slot for role {position}", 422)


class PlayerUnavailableError(AppError):
    category = VALIDATION

    def __init__(self, detail: str) -> None:
        super().__init__(4004, f"Player unavailable: {detail}", 422)


class TimerOutOfRangeError(AppError):
    category = VALIDATION

    def __init__(self, seconds: int, low: int, high: int) -> None:
        super().__init__(
            4005, f"Auction timer {seconds}s outside allowed range {low}-{high}s", 422
        )


# --- 41xx: Auction authorization ---

class NotYourTurnError(AppError):
    category = AUTHORIZATION

    def __init__(self) -> None:
        super().__init__(4101, "It is not your turn to nominate", 403)


class ForbiddenError(AppError):
    category = AUTHORIZATION

    def __init__(self, detail: str = "Action not allowed") -> None:
        super().__init__(4102, detail, 403)


# --- 42xx: Auction state conflict ---

class InvalidStateError(AppError):
    category = CONFLICT

    def __init__(self, detail: str) -> None:
        super().__init__(4201, f"Invalid state: {detail}", 409)


class TimerExpiredError(AppError):
    category = CONFLICT

    def __init__(self) -> None:
        super().__init__(4202, "Auction timer has expired", 409)


# --- 9xxx: System ---

class RateLimitError(AppError):
    def __init__(self) -> None:
        super().__init__(9001, "Rate limit exceeded", 429)


class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)
