"""Time sources used for TTL computation and bucket refill math."""

import threading
import time
from typing import Protocol, runtime_checkable

NANOS_PER_MILLI = 1_000_000
NANOS_PER_SECOND = 1_000_000_000


@runtime_checkable
class Clock(Protocol):
    """Source of the current time in nanoseconds."""

    def now_nanos(self) -> int:
        """Return the current time in nanoseconds since the epoch."""
        ...


class SystemClock:
    """Wall clock backed by ``time.time_ns``."""

    def now_nanos(self) -> int:
        return time.time_ns()


class ManualClock:
    """Deterministic clock that only moves when told to.

    Example:
        clock = ManualClock()
        clock.advance(seconds=5)
        assert clock.now_nanos() == 5_000_000_000
    """

    def __init__(self, start_nanos: int = 0) -> None:
        self._now = start_nanos
        self._lock = threading.Lock()

    def now_nanos(self) -> int:
        with self._lock:
            return self._now

    def advance(self, nanos: int = 0, millis: int = 0, seconds: float = 0) -> int:
        """Move the clock forward and return the new time."""
        delta = nanos + millis * NANOS_PER_MILLI + int(seconds * NANOS_PER_SECOND)
        if delta < 0:
            raise ValueError("ManualClock cannot move backwards via advance()")
        with self._lock:
            self._now += delta
            return self._now

    def set(self, nanos: int) -> None:
        """Jump to an absolute time."""
        with self._lock:
            self._now = nanos
