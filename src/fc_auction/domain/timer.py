"""Server-authoritative auction timer.

Only the server's clock decides expiry. Clients get ``timer_expires_at``
plus a server timestamp and derive the countdown with ``remaining``.
"""

import math
from collections.abc import Callable
from datetime import datetime, timedelta

from src.fc_common.datetime_utils import utc_now


def remaining(expires_at: datetime, now: datetime) -> int:
    """Whole seconds left, rounded up, never negative."""
    return max(0, math.ceil((expires_at - now).total_seconds()))


class TimerAuthority:
    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    def start(self, seconds: int, now: datetime | None = None) -> datetime:
        return (now or self.now()) + timedelta(seconds=seconds)

    def reset(self, seconds: int, now: datetime | None = None) -> datetime:
        """Full fresh window, not an extension of the old one."""
        return self.start(seconds, now)

    def remaining(self, expires_at: datetime | None, now: datetime | None = None) -> int:
        if expires_at is None:
            return 0
        return remaining(expires_at, now or self.now())

    def is_expired(self, expires_at: datetime | None, now: datetime | None = None) -> bool:
        if expires_at is None:
            return False
        return (now or self.now()) >= expires_at

    def pause(self, expires_at: datetime, now: datetime | None = None) -> int:
        # a paused auction resumes with at least one second
        return max(1, self.remaining(expires_at, now))

    def resume(self, remaining_seconds: int, now: datetime | None = None) -> datetime:
        return self.start(remaining_seconds, now)
