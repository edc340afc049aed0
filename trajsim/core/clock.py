"""Simulation clock shared by every entity of one simulation."""

from __future__ import annotations

from trajsim.errors import InvalidTimeError


class Clock:
    """Monotonic simulated time, starting at ``start``.

    Entities read ``now`` through their simulation; only the event loop
    advances the clock.
    """

    __slots__ = ("_now", "_start")

    def __init__(self, start: float = 0.0):
        self._start = float(start)
        self._now = float(start)

    @property
    def now(self) -> float:
        return self._now

    @property
    def start(self) -> float:
        return self._start

    def update(self, time: float) -> None:
        """Advance to ``time``. Moving backwards raises InvalidTimeError."""
        if time < self._now:
            raise InvalidTimeError(time, self._now)
        self._now = float(time)

    def reset(self) -> None:
        self._now = self._start

    def __repr__(self) -> str:
        return f"Clock(now={self._now})"
