"""Turn sequencing for nominations.

The order is materialised once per lane (admin-supplied or shuffled with
a recorded seed) and never recomputed mid-session. Members who leave are
pruned; the pointer stays on the same member or the next survivor.
"""

import random
from collections.abc import Callable, Sequence

from src.fc_common.errors import EmptyTurnOrderError, InvalidTurnOrderError


def compute_initial_order(
    member_ids: Sequence[str],
    explicit: Sequence[str] | None = None,
    seed: int | None = None,
) -> tuple[list[str], int | None]:
    """Return (order, seed). seed is None for an explicit order."""
    if not member_ids:
        raise EmptyTurnOrderError()

    if explicit is not None:
        order = list(explicit)
        if len(set(order)) != len(order):
            raise InvalidTurnOrderError("duplicate members")
        if set(order) != set(member_ids):
            missing = sorted(set(member_ids) - set(order))
            extra = sorted(set(order) - set(member_ids))
            raise InvalidTurnOrderError(f"missing={missing} unknown={extra}")
        return order, None

    if seed is None:
        seed = random.SystemRandom().randrange(2**31)
    order = list(member_ids)
    random.Random(seed).shuffle(order)
    return order, seed


def advance(order: Sequence[str], index: int) -> int:
    if not order:
        raise EmptyTurnOrderError()
    return (index + 1) % len(order)


def prune(
    order: Sequence[str], index: int, active_ids: Sequence[str] | set[str]
) -> tuple[list[str], int]:
    """Drop departed members and re-target the turn pointer.

    If the current member survives the pointer follows them; otherwise it
    lands on the next surviving member in the original cyclic order.
    """
    active = set(active_ids)
    kept = [m for m in order if m in active]
    if not kept:
        raise EmptyTurnOrderError()
    if len(kept) == len(order):
        return list(order), index

    n = len(order)
    for step in range(n):
        candidate = order[(index + step) % n]
        if candidate in active:
            return kept, kept.index(candidate)
    return kept, 0  # unreachable: kept is non-empty


def next_eligible(
    order: Sequence[str], start: int, is_eligible: Callable[[str], bool]
) -> int | None:
    """First index at or after ``start`` (cyclically) whose member is eligible."""
    if not order:
        raise EmptyTurnOrderError()
    n = len(order)
    for step in range(n):
        idx = (start + step) % n
        if is_eligible(order[idx]):
            return idx
    return None
