"""Time-ordered, collision-resistant identifiers ("snowflakes").

Layout of the 63-bit integer, most significant first::

    41 bits  milliseconds since EPOCH_MS
    10 bits  worker id
    12 bits  per-millisecond sequence

Identifiers are returned as decimal strings.  A generator is thread-safe;
two generators in the same process or on different hosts must use distinct
worker ids to stay collision-free.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

# 2020-01-01T00:00:00Z
EPOCH_MS = 1_577_836_800_000

WORKER_BITS = 10
SEQUENCE_BITS = 12
MAX_WORKER_ID = (1 << WORKER_BITS) - 1
MAX_SEQUENCE = (1 << SEQUENCE_BITS) - 1


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class SnowflakeGenerator:
    """Generates unique, sortable string identifiers.

    Parameters
    ----------
    worker_id:
        0-1023, distinguishes concurrent generators.
    clock:
        Returns the current time in milliseconds.  Injectable for tests.
    """

    def __init__(self, worker_id: int = 0, *, clock: Callable[[], int] = _now_ms) -> None:
        if not 0 <= worker_id <= MAX_WORKER_ID:
            raise ValueError(f"worker_id must be 0-{MAX_WORKER_ID}, got {worker_id}")
        self._worker_id = worker_id
        self._clock = clock
        self._lock = threading.Lock()
        self._last_ms = -1
        self._sequence = 0

    def next_int(self) -> int:
        with self._lock:
            now = self._clock()
            # Never go backwards, even if the wall clock does
            if now < self._last_ms:
                now = self._last_ms

            if now == self._last_ms:
                self._sequence = (self._sequence + 1) & MAX_SEQUENCE
                if self._sequence == 0:
                    # Sequence exhausted for this millisecond
                    now = max(self._clock(), self._last_ms + 1)
            else:
                self._sequence = 0

            self._last_ms = now
            return (
                ((now - EPOCH_MS) << (WORKER_BITS + SEQUENCE_BITS))
                | (self._worker_id << SEQUENCE_BITS)
                | self._sequence
            )

    def __call__(self) -> str:
        return str(self.next_int())


def snowflake_timestamp_ms(snowflake: str) -> int:
    """Unix time in milliseconds encoded in a snowflake."""
    return (int(snowflake) >> (WORKER_BITS + SEQUENCE_BITS)) + EPOCH_MS
