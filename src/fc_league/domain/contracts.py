"""Default contract terms for a player bought at auction.

salary  = auction price / 10, rounded half up, at least 1
clause  = salary x multiplier(duration)
"""

from src.fc_league.domain.models import Contract

DEFAULT_CONTRACT_DURATION = 3

# duration (seasons) -> rescission clause multiplier
CLAUSE_MULTIPLIERS: dict[int, int] = {4: 11, 3: 9, 2: 7, 1: 3}


def default_salary(price: int) -> int:
    return max(1, (price + 5) // 10)


def rescission_clause(salary: int, duration: int) -> int:
    try:
        return salary * CLAUSE_MULTIPLIERS[duration]
    except KeyError:
        raise ValueError(f"unsupported contract duration: {duration}") from None


def default_terms(price: int) -> tuple[int, int, int]:
    """(salary, duration, clause) for a fresh acquisition at ``price``."""
    salary = default_salary(price)
    return salary, DEFAULT_CONTRACT_DURATION, rescission_clause(salary, DEFAULT_CONTRACT_DURATION)


def rubata_base_price(contract: Contract) -> int:
    """Starting price when another manager's player is put up for rubata."""
    return contract.rescission_clause + contract.salary
