"""
clock.py - Time Sources

LedgerClock is a logical clock for simulations and tests: time only moves
forward. SystemClock reads the wall clock.

Both return whole seconds and satisfy the Clock protocol.
"""

from __future__ import annotations
import time

from .core import SECONDS_PER_DAY


class LedgerClock:
    """
    Logical clock in whole seconds. Starts at a positive time, since loan
    timestamps use 0 for "not yet".

    Example:
        clock = LedgerClock(1_700_000_000)
        clock.advance_days(30)
    """

    def __init__(self, initial_time: int):
        if initial_time <= 0:
            raise ValueError(f"initial_time must be positive, got {initial_time}")
        self._current_time = initial_time

    def now(self) -> int:
        return self._current_time

    def advance_time(self, new_time: int) -> None:
        """
        Move the clock to new_time.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    def advance(self, seconds: int) -> int:
        self.advance_time(self._current_time + seconds)
        return self._current_time

    def advance_days(self, days: int) -> int:
        return self.advance(days * SECONDS_PER_DAY)


class SystemClock:
    """Wall-clock time, truncated to whole seconds."""

    def now(self) -> int:
        return int(time.time())
