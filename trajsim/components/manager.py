"""Scheduled changes of resource capacity and queue size."""

from __future__ import annotations

import bisect
import logging
import math
from collections.abc import Iterator, Sequence
from typing import TYPE_CHECKING

from trajsim.core.entity import Entity
from trajsim.core.event import Event, EventKind

if TYPE_CHECKING:
    from trajsim.components.resource import Resource

logger = logging.getLogger(__name__)

PARAMETERS = ("capacity", "queue_size")


class Schedule:
    """Piecewise-constant values applied at timetable instants.

    With a finite ``period`` the timetable repeats forever: value ``i`` applies
    at ``timetable[i] + k * period`` for every ``k >= 0``.

    Example::

        # Two servers during the first 8 hours of every day, one otherwise.
        Schedule([0, 8], [2, 1], period=24)

    Raises:
        ValueError: On mismatched lengths, an unsorted or negative timetable,
            a period not beyond the last instant, or a non-periodic schedule
            that does not start at 0.
    """

    def __init__(self, timetable: Sequence[float], values: Sequence[float], period: float = math.inf):
        if not timetable or len(timetable) != len(values):
            raise ValueError("timetable and values must be non-empty and of equal length")
        if any(b <= a for a, b in zip(timetable, timetable[1:])):
            raise ValueError("timetable must be strictly increasing")
        if timetable[0] < 0:
            raise ValueError("timetable must be >= 0")
        if period <= timetable[-1]:
            raise ValueError("period must be greater than the last timetable instant")
        if math.isinf(period) and timetable[0] != 0:
            raise ValueError("a non-periodic schedule must start at 0")

        self.timetable = [float(t) for t in timetable]
        self.values = list(values)
        self.period = period

    @property
    def initial(self) -> float:
        """Value in effect at time 0."""
        return self.value_at(0.0)

    def value_at(self, t: float) -> float:
        """Value in effect at time ``t``."""
        if not math.isinf(self.period):
            t = t % self.period
        if t < self.timetable[0]:
            # Still in the tail of the previous cycle.
            return self.values[-1]
        return self.values[bisect.bisect_right(self.timetable, t) - 1]

    def changes(self, after: float = 0.0) -> Iterator[tuple[float, float]]:
        """Yield ``(time, value)`` for every change strictly after ``after``."""
        if math.isinf(self.period):
            for at, value in zip(self.timetable, self.values):
                if at > after:
                    yield at, value
            return
        k = int(after // self.period)
        while True:
            offset = k * self.period
            for at, value in zip(self.timetable, self.values):
                if offset + at > after:
                    yield offset + at, value
            k += 1

    def __repr__(self) -> str:
        return f"Schedule({self.timetable}, {self.values}, period={self.period})"


class Manager(Entity):
    """Applies a Schedule to one parameter of a resource.

    Each change fires as a MANAGER_ACTION event and takes effect
    synchronously at that instant.
    """

    def __init__(self, resource: Resource, param: str, schedule: Schedule):
        if param not in PARAMETERS:
            raise ValueError(f"param must be one of {PARAMETERS}, got {param!r}")
        super().__init__(f"{resource.name}.{param}")
        self.resource = resource
        self.param = param
        self.schedule_ = schedule
        self._changes: Iterator[tuple[float, float]] = iter(())
        self._pending: tuple[float, float] | None = None

    def start(self) -> None:
        """Apply the value in effect now and queue the changes still ahead."""
        self._apply(self.schedule_.value_at(self.now))
        self._changes = self.schedule_.changes(after=self.now)
        self._schedule_next()

    def _schedule_next(self) -> None:
        self._pending = next(self._changes, None)
        if self._pending is not None:
            at, _ = self._pending
            self.schedule(at - self.now, EventKind.MANAGER_ACTION, f"manage:{self.name}")

    def handle_event(self, event: Event) -> None:
        _, value = self._pending
        self._apply(value)
        self._schedule_next()
        return None

    def _apply(self, value: float) -> None:
        logger.debug("[%s] -> %s at t=%s", self.name, value, self.now)
        if self.param == "capacity":
            self.resource.set_capacity(value)
        else:
            self.resource.set_queue_size(value)
