"""Append-only record of what happened during a run.

The kernel writes rows as state changes happen; the extract methods turn
them into fresh ``pandas.DataFrame`` objects. Rows are appended in event
order, so every extract is already ordered by simulated time.
"""

from __future__ import annotations

import logging
from typing import Any

import pandas as pd

logger = logging.getLogger(__name__)

ARRIVAL_COLUMNS = ["name", "start_time", "end_time", "activity_time", "finished", "outcome"]
RELEASE_COLUMNS = ["name", "start_time", "end_time", "activity_time", "resource"]
RESOURCE_COLUMNS = ["resource", "time", "server", "queue", "capacity", "queue_size", "system", "limit"]
ATTRIBUTE_COLUMNS = ["name", "time", "attribute", "value"]


class Monitor:
    """Collects arrival, resource and attribute rows for one simulation."""

    def __init__(self) -> None:
        self._arrivals: list[tuple] = []
        self._releases: list[tuple] = []
        self._resources: list[tuple] = []
        self._attributes: list[tuple] = []

    def record_arrival(
        self,
        name: str,
        start_time: float,
        end_time: float,
        activity_time: float,
        finished: bool,
        outcome: str,
    ) -> None:
        self._arrivals.append((name, start_time, end_time, activity_time, finished, outcome))

    def record_release(
        self,
        name: str,
        start_time: float,
        end_time: float,
        activity_time: float,
        resource: str,
    ) -> None:
        """One row per arrival per resource, written when it lets go of the resource."""
        self._releases.append((name, start_time, end_time, activity_time, resource))

    def record_resource(
        self,
        resource: str,
        time: float,
        server: float,
        queue: int,
        capacity: float,
        queue_size: float,
    ) -> None:
        self._resources.append(
            (resource, time, server, queue, capacity, queue_size, server + queue, capacity + queue_size)
        )

    def record_attribute(self, time: float, name: str, key: str, value: Any) -> None:
        """Record an attribute write. Global attributes use an empty name."""
        self._attributes.append((name, time, key, value))

    def arrivals(self, ongoing: list[tuple] | None = None) -> pd.DataFrame:
        """Arrivals that left the system, plus ``ongoing`` rows when given."""
        rows = self._arrivals + list(ongoing or [])
        return pd.DataFrame.from_records(rows, columns=ARRIVAL_COLUMNS)

    def arrivals_per_resource(self) -> pd.DataFrame:
        return pd.DataFrame.from_records(self._releases, columns=RELEASE_COLUMNS)

    def resources(self) -> pd.DataFrame:
        return pd.DataFrame.from_records(self._resources, columns=RESOURCE_COLUMNS)

    def attributes(self) -> pd.DataFrame:
        return pd.DataFrame.from_records(self._attributes, columns=ATTRIBUTE_COLUMNS)

    def reset(self) -> None:
        self._arrivals.clear()
        self._releases.clear()
        self._resources.clear()
        self._attributes.clear()
        logger.debug("Monitor cleared")

    def __len__(self) -> int:
        return len(self._arrivals) + len(self._releases) + len(self._resources) + len(self._attributes)
