"""Sources spawn arrivals and attach them to a trajectory.

Two variants:

- ``Generator``: a callable returns the gap until the next arrival.
- ``DataSource``: a predetermined, finite sequence of ``(time, attributes)``
  rows, typically a ``pandas.DataFrame``.

A source is itself a schedulable entity with its own next-fire event.
Changing its trajectory or distribution only affects arrivals generated
afterwards; arrivals already in flight keep their trajectory.
"""

from __future__ import annotations

import logging
import math
from abc import abstractmethod
from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any

import pandas as pd

from trajsim.components.arrival import Arrival
from trajsim.core.entity import Entity
from trajsim.core.event import Event, EventKind

if TYPE_CHECKING:
    from trajsim.trajectory.trajectory import Trajectory

logger = logging.getLogger(__name__)

Distribution = Callable[[], float]
"""Inter-arrival gap provider. A negative gap stops the generator."""


class Source(Entity):
    """Base class for arrival sources.

    Args:
        name_prefix: Arrivals are named ``f"{name_prefix}{n}"``.
        trajectory: Trajectory given to new arrivals.
        mon: Monitoring level handed to each arrival.
        priority: Priority given to new arrivals.
        preemptible: Preemption threshold given to new arrivals.
        restart: Restart flag given to new arrivals.
        active: Whether the source starts generating when the run starts.
    """

    def __init__(
        self,
        name_prefix: str,
        trajectory: Trajectory,
        *,
        mon: int = 2,
        priority: int = 0,
        preemptible: int | None = None,
        restart: bool = False,
        active: bool = True,
    ):
        super().__init__(name_prefix)
        self._trajectory = trajectory
        self.mon = mon
        self.priority = priority
        self.preemptible = preemptible
        self.restart = restart
        self.initially_active = active
        self._active = False
        self._next: Event | None = None
        self._n_generated = 0

    @property
    def trajectory(self) -> Trajectory:
        return self._trajectory

    @property
    def active(self) -> bool:
        return self._active

    @property
    def n_generated(self) -> int:
        return self._n_generated

    def set_trajectory(self, trajectory: Trajectory) -> None:
        self._trajectory = trajectory

    @abstractmethod
    def set_distribution(self, distribution: Any) -> None:
        raise NotImplementedError

    def activate(self) -> None:
        """Start (or resume) generating arrivals. No-op when already active."""
        if self._active:
            return
        self._active = True
        self._schedule_next()
        logger.debug("[%s] activated at t=%s", self.name, self.now)

    def deactivate(self) -> None:
        """Stop generating arrivals and void the pending fire event."""
        if not self._active:
            return
        self._active = False
        if self._next is not None:
            self._next.cancel()
            self._next = None
        logger.debug("[%s] deactivated at t=%s", self.name, self.now)

    def reset(self) -> None:
        self._active = False
        self._next = None
        self._n_generated = 0

    @abstractmethod
    def _schedule_next(self) -> None:
        raise NotImplementedError

    def _spawn(self, attributes: Mapping[str, Any] | None = None) -> Arrival:
        arrival = Arrival(
            f"{self.name}{self._n_generated}",
            self._trajectory,
            priority=self.priority,
            preemptible=self.preemptible,
            restart=self.restart,
            mon=self.mon,
        )
        self._n_generated += 1
        arrival.attach(self.sim)
        for key, value in (attributes or {}).items():
            arrival.set_attribute(key, value)
        arrival.start()
        return arrival


class Generator(Source):
    """Source whose inter-arrival gaps come from a callable.

    The first arrival is created when the source is activated; each fire
    draws the next gap, schedules the following fire and then starts a new
    arrival. A negative gap deactivates the generator after the current
    arrival.
    """

    def __init__(self, name_prefix: str, trajectory: Trajectory, distribution: Distribution, **kwargs: Any):
        super().__init__(name_prefix, trajectory, **kwargs)
        if not callable(distribution):
            raise TypeError("distribution must be callable")
        self._distribution = distribution

    @property
    def distribution(self) -> Distribution:
        return self._distribution

    def set_distribution(self, distribution: Distribution) -> None:
        if not callable(distribution):
            raise TypeError("distribution must be callable")
        self._distribution = distribution

    def _schedule_next(self, delay: float = 0.0) -> None:
        self._next = self.schedule(delay, EventKind.SOURCE_FIRE, f"fire:{self.name}")

    def handle_event(self, event: Event) -> None:
        if event is not self._next:
            return None
        self._next = None
        gap = float(self._distribution())
        if gap < 0 or math.isnan(gap):
            logger.debug("[%s] distribution returned %s; deactivating", self.name, gap)
            self._active = False
        else:
            self._schedule_next(gap)
        self._spawn()
        return None


class DataSource(Source):
    """Source replaying a finite, ordered table of arrivals.

    Args:
        data: A ``pandas.DataFrame`` or an iterable of ``(time, attributes)``
            tuples or of mappings containing the time column.
        time: Name of the time column.
        attributes: Columns copied into arrival attributes; defaults to every
            column except the time column.
        gap: If True the time column holds inter-arrival gaps instead of
            absolute times.

    Raises:
        ValueError: If times are negative or decrease.
    """

    def __init__(
        self,
        name_prefix: str,
        trajectory: Trajectory,
        data: pd.DataFrame | Iterable[Any],
        *,
        time: str = "time",
        attributes: list[str] | None = None,
        gap: bool = False,
        **kwargs: Any,
    ):
        super().__init__(name_prefix, trajectory, **kwargs)
        self._time_column = time
        self._attribute_columns = attributes
        self._gap = gap
        self._rows = self._load(data)
        self._cursor = 0

    @property
    def remaining(self) -> int:
        return len(self._rows) - self._cursor

    @property
    def exhausted(self) -> bool:
        return self._cursor >= len(self._rows)

    def _load(self, data: pd.DataFrame | Iterable[Any]) -> list[tuple[float, dict[str, Any]]]:
        frame = self._to_frame(data)
        if self._time_column not in frame.columns:
            raise ValueError(f"data has no '{self._time_column}' column")
        columns = self._attribute_columns
        if columns is None:
            columns = [c for c in frame.columns if c != self._time_column]

        times = frame[self._time_column].astype(float)
        if self._gap:
            times = times.cumsum()
        if (times < 0).any():
            raise ValueError("arrival times must be >= 0")
        if not times.is_monotonic_increasing:
            raise ValueError("arrival times must be non-decreasing")

        # to_dict("records") on zero columns yields no rows at all.
        records = frame[columns].to_dict("records") if columns else [{} for _ in range(len(frame))]
        return [(float(t), dict(attrs)) for t, attrs in zip(times, records)]

    def _to_frame(self, data: pd.DataFrame | Iterable[Any]) -> pd.DataFrame:
        if isinstance(data, pd.DataFrame):
            return data.reset_index(drop=True)
        rows = []
        for row in data:
            if isinstance(row, Mapping):
                rows.append(dict(row))
            else:
                at, attrs = row
                rows.append({self._time_column: at, **dict(attrs or {})})
        return pd.DataFrame(rows, columns=None if rows else [self._time_column])

    def set_distribution(self, data: pd.DataFrame | Iterable[Any]) -> None:
        """Replace the rows not yet consumed."""
        was_active = self._active
        self.deactivate()
        self._rows = self._load(data)
        self._cursor = 0
        if was_active:
            self.activate()

    def reset(self) -> None:
        super().reset()
        self._cursor = 0

    def _schedule_next(self) -> None:
        if self.exhausted:
            self._active = False
            return
        at = max(self._rows[self._cursor][0], self.now)
        self._next = self.schedule(at - self.now, EventKind.SOURCE_FIRE, f"fire:{self.name}")

    def handle_event(self, event: Event) -> None:
        if event is not self._next:
            return None
        self._next = None
        _, attributes = self._rows[self._cursor]
        self._cursor += 1
        self._schedule_next()
        self._spawn(attributes)
        return None
