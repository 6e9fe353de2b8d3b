"""UTC datetime utilities."""

import math
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def epoch_ms(dt: datetime) -> int:
    """Milliseconds since the Unix epoch, as sent to clients."""
    return math.floor(dt.timestamp() * 1000)


def isoformat_or_none(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt is not None else None
