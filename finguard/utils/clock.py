# finguard/utils/clock.py
from __future__ import annotations

from time import monotonic
from typing import Protocol


class Clock(Protocol):
    def now(self) -> int:
        """Current time in integer milliseconds."""
        ...


class MonotonicClock:
    def now(self) -> int:
        return int(monotonic() * 1000)


class ManualClock:
    """
    Clock that only moves when told to. Used by tests and replay tools.
    """

    def __init__(self, start_ms: int = 0):
        self._now = int(start_ms)

    def now(self) -> int:
        return self._now

    def advance(self, ms: int) -> int:
        self._now += int(ms)
        return self._now

    def set(self, ms: int) -> None:
        self._now = int(ms)
