"""Snowflake ids for auctions, bids and roster rows.

Ids are decimal strings that grow with time, so two bids placed in the
same millisecond still sort in the order the engine accepted them. Each
app process needs its own ID_WORKER_ID when several run side by side.
"""

import threading
import time

from config.settings import settings

_EPOCH_MS = 1_735_689_600_000  # 2025-01-01T00:00:00Z
_WORKER_BITS = 10
_SEQUENCE_BITS = 12
_MAX_WORKER = (1 << _WORKER_BITS) - 1
_MAX_SEQUENCE = (1 << _SEQUENCE_BITS) - 1


class SnowflakeIdGenerator:
    """41-bit ms timestamp | 10-bit worker | 12-bit per-ms sequence."""

    def __init__(self, worker_id: int = 0) -> None:
        if not 0 <= worker_id <= _MAX_WORKER:
            raise ValueError(f"worker_id must be 0-{_MAX_WORKER}")
        self._worker_id = worker_id
        self._sequence = 0
        self._last_ms = -1
        self._lock = threading.Lock()

    def next_id(self) -> str:
        with self._lock:
            ts = self._wait_past(self._last_ms - 1)  # never step back if the clock does
            if ts == self._last_ms:
                self._sequence = (self._sequence + 1) & _MAX_SEQUENCE
                if self._sequence == 0:
                    ts = self._wait_past(self._last_ms)
            else:
                self._sequence = 0
            self._last_ms = ts
            return str(
                ((ts - _EPOCH_MS) << (_WORKER_BITS + _SEQUENCE_BITS))
                | (self._worker_id << _SEQUENCE_BITS)
                | self._sequence
            )

    @staticmethod
    def _wait_past(ms: int) -> int:
        now = int(time.time() * 1000)
        while now <= ms:
            time.sleep(0.0005)
            now = int(time.time() * 1000)
        return now


_generator = SnowflakeIdGenerator(settings.ID_WORKER_ID)


def generate_id() -> str:
    return _generator.next_id()
