"""Tests for time sources."""

import time

import pytest

from bucket_cas.clock import Clock, ManualClock, SystemClock


class TestSystemClock:
    """Tests for SystemClock."""

    def test_close_to_wall_clock(self) -> None:
        before = time.time_ns()
        now = SystemClock().now_nanos()
        after = time.time_ns()
        assert before <= now <= after

    def test_satisfies_protocol(self) -> None:
        assert isinstance(SystemClock(), Clock)


class TestManualClock:
    """Tests for ManualClock."""

    def test_starts_at_given_time(self) -> None:
        assert ManualClock(start_nanos=42).now_nanos() == 42

    def test_advance_units(self) -> None:
        clock = ManualClock()
        clock.advance(nanos=5)
        clock.advance(millis=2)
        clock.advance(seconds=1)
        assert clock.now_nanos() == 1_002_000_005

    def test_advance_backwards_rejected(self) -> None:
        with pytest.raises(ValueError):
            ManualClock(start_nanos=10).advance(nanos=-1)

    def test_set(self) -> None:
        clock = ManualClock()
        clock.set(99)
        assert clock.now_nanos() == 99
