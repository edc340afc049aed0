"""Simulation: the owner of one clock, one event heap and one set of components.

The loop pops the earliest event (ties broken by insertion order), advances
the clock to its time and invokes it. Arrivals, sources, the signal bus and
resource managers all react by scheduling further events; nothing runs
outside the loop.

Example::

    sim = Simulation("clinic", seed=42)
    sim.add_resource("doctor", capacity=1)

    patient = Trajectory("patient").seize("doctor").timeout(3).release("doctor")
    sim.add_generator("patient", patient, lambda: 5)

    summary = sim.run(until=20)
    arrivals = sim.get_mon_arrivals()
"""

from __future__ import annotations

import logging
import math
import random
import time
from collections import Counter
from collections.abc import Callable, Iterable
from itertools import count
from typing import TYPE_CHECKING, Any

import pandas as pd

from trajsim.components.manager import Manager, Schedule
from trajsim.components.resource import Resource
from trajsim.components.signals import SignalBus
from trajsim.components.source import DataSource, Generator, Source
from trajsim.core.clock import Clock
from trajsim.core.event import Event, EventCallback, EventKind
from trajsim.core.event_heap import EventHeap
from trajsim.errors import InvalidTimeError, UnknownResourceOrSignalError
from trajsim.instrumentation.monitor import Monitor
from trajsim.instrumentation.summary import SimulationSummary

if TYPE_CHECKING:
    from trajsim.components.arrival import Arrival, Batch
    from trajsim.trajectory.trajectory import Trajectory

logger = logging.getLogger(__name__)


class Simulation:
    """A self-contained discrete-event simulation.

    Several simulations may coexist in one process (e.g. replications);
    none of them share clocks, queues, random streams or monitors.

    Args:
        name: Label used in logs and the run summary.
        seed: Seed for ``rng``, the stream used by ``leave`` and the
            ``random`` selection policy. ``reset`` reseeds it.
    """

    def __init__(self, name: str = "sim", seed: int | None = None):
        self.name = name
        self.seed = seed
        self.rng = random.Random(seed)
        self.clock = Clock()
        self.heap = EventHeap()
        self.monitor = Monitor()
        self.signals = SignalBus()
        self.signals.attach(self)

        self._resources: dict[str, Resource] = {}
        self._sources: dict[str, Source] = {}
        self._managers: list[Manager] = []
        self._initial_globals: dict[str, Any] = {}
        self._globals: dict[str, Any] = {}
        self._init_run_state()

    def _init_run_state(self) -> None:
        self._arrivals: dict[int, Arrival] = {}
        self._batches: dict[Any, Batch] = {}
        self._batch_ids = count()
        self._activity_state: dict[int, Any] = {}
        self._outcomes: Counter[str] = Counter()
        self._events_processed = 0
        self._started = False

    @property
    def now(self) -> float:
        return self.clock.now

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add_resource(
        self,
        name: str,
        capacity: float | Schedule = 1,
        queue_size: float | Schedule = math.inf,
        *,
        preemptive: bool = False,
        preempt_order: str = "fifo",
        queue_size_strict: bool = False,
        mon: bool = True,
    ) -> Resource:
        """Register a resource. ``capacity`` and ``queue_size`` may be Schedules."""
        if name in self._resources:
            raise ValueError(f"resource '{name}' already exists")
        resource = Resource(
            name,
            capacity.initial if isinstance(capacity, Schedule) else capacity,
            queue_size.initial if isinstance(queue_size, Schedule) else queue_size,
            preemptive=preemptive,
            preempt_order=preempt_order,
            queue_size_strict=queue_size_strict,
            mon=mon,
        )
        resource.attach(self)
        self._resources[name] = resource

        for param, value in (("capacity", capacity), ("queue_size", queue_size)):
            if isinstance(value, Schedule):
                manager = Manager(resource, param, value)
                manager.attach(self)
                self._managers.append(manager)
                if self._started:
                    manager.start()
        logger.debug("Resource added: %r", resource)
        return resource

    def add_source(self, source: Source) -> Source:
        if source.name in self._sources:
            raise ValueError(f"source '{source.name}' already exists")
        source.attach(self)
        self._sources[source.name] = source
        if self._started:
            self._validate([source.trajectory])
            if source.initially_active:
                source.activate()
        return source

    def add_generator(
        self,
        name_prefix: str,
        trajectory: Trajectory,
        distribution: Callable[[], float],
        *,
        mon: int = 2,
        priority: int = 0,
        preemptible: int | None = None,
        restart: bool = False,
        active: bool = True,
    ) -> Generator:
        """Register a source drawing inter-arrival gaps from ``distribution()``."""
        return self.add_source(
            Generator(
                name_prefix, trajectory, distribution,
                mon=mon, priority=priority, preemptible=preemptible, restart=restart, active=active,
            )
        )

    def add_dataframe(
        self,
        name_prefix: str,
        trajectory: Trajectory,
        data: pd.DataFrame | Iterable[Any],
        *,
        time: str = "time",
        attributes: list[str] | None = None,
        gap: bool = False,
        mon: int = 2,
        priority: int = 0,
        preemptible: int | None = None,
        restart: bool = False,
        active: bool = True,
    ) -> DataSource:
        """Register a source replaying predetermined arrival rows."""
        return self.add_source(
            DataSource(
                name_prefix, trajectory, data,
                time=time, attributes=attributes, gap=gap,
                mon=mon, priority=priority, preemptible=preemptible, restart=restart, active=active,
            )
        )

    def add_global(self, key: str, value: Any) -> None:
        self._initial_globals[key] = value
        self._globals[key] = value

    def add_signal(self, *names: str) -> None:
        """Declare signals that are only ever sent dynamically."""
        self.signals.register(*names)

    # ------------------------------------------------------------------
    # Run control
    # ------------------------------------------------------------------

    def push(self, event: Event) -> None:
        if event.time < self.now:
            raise InvalidTimeError(event.time, self.now)
        self.heap.push(event)

    def schedule(self, at: float, callback: EventCallback, description: str | None = None) -> Event:
        """Call ``callback(event)`` at absolute time ``at``."""
        event = Event(at, EventKind.CALLBACK, description=description, callback=callback)
        self.push(event)
        return event

    def send(self, signals: str | Iterable[str], delay: float = 0) -> None:
        """Broadcast ``signals`` after ``delay``. Unknown names are registered."""
        names = [signals] if isinstance(signals, str) else list(signals)
        self.signals.send(names, delay)

    def run(self, until: float = math.inf) -> SimulationSummary:
        """Process every event strictly before ``until``.

        Events exactly at ``until`` stay pending. A finite horizon always
        leaves the clock at ``until``, even when the queue empties first;
        without one the clock stays at the last processed event. Calling run
        again with a later horizon continues where this one stopped.
        """
        if until < self.now:
            raise InvalidTimeError(until, self.now)
        self._ensure_started()
        logger.info("Simulation '%s' running from t=%s until t=%s", self.name, self.now, until)
        wall_start = time.perf_counter()
        processed_before = self._events_processed

        while True:
            self.heap.discard_cancelled()
            if not self.heap.has_events():
                break
            if self.heap.peek().time >= until:
                break
            self._process(self.heap.pop())
        if not math.isinf(until):
            self.clock.update(until)

        wall = time.perf_counter() - wall_start
        logger.info(
            "Simulation '%s' stopped at t=%s after %d events (%.3fs wall)",
            self.name, self.now, self._events_processed - processed_before, wall,
        )
        return self.summary(wall)

    def step(self) -> bool:
        """Process the next event. Returns False when nothing is pending."""
        self._ensure_started()
        self.heap.discard_cancelled()
        if not self.heap.has_events():
            return False
        self._process(self.heap.pop())
        return True

    def peek(self, n: int = 1) -> list[tuple[float, str]]:
        """``(time, description)`` of the next ``n`` live events."""
        self._ensure_started()
        return [(event.time, event.description) for event in self.heap.upcoming(n)]

    def reset(self) -> None:
        """Return to time 0 with fresh state, keeping the model definition."""
        self.clock.reset()
        self.heap.clear()
        self.monitor.reset()
        self.signals.reset()
        self.rng.seed(self.seed)
        for resource in self._resources.values():
            resource.reset()
        for source in self._sources.values():
            source.reset()
        self._globals = dict(self._initial_globals)
        self._init_run_state()
        logger.debug("Simulation '%s' reset", self.name)

    def summary(self, wall_clock_seconds: float = 0.0) -> SimulationSummary:
        return SimulationSummary(
            name=self.name,
            now=self.now,
            events_processed=self._events_processed,
            events_cancelled=self.heap.cancelled_discarded,
            wall_clock_seconds=wall_clock_seconds,
            arrivals_started=self._outcomes["started"],
            arrivals_finished=self._outcomes["finished"],
            arrivals_rejected=self._outcomes["rejected"],
            arrivals_reneged=self._outcomes["reneged"],
            resources={name: resource.stats for name, resource in self._resources.items()},
        )

    def _ensure_started(self) -> None:
        if self._started:
            return
        self._validate([source.trajectory for source in self._sources.values()])
        self._started = True
        for manager in self._managers:
            manager.start()
        for source in self._sources.values():
            if source.initially_active:
                source.activate()

    def _process(self, event: Event) -> None:
        self.clock.update(event.time)
        try:
            follow_ups = event.invoke()
        except Exception:
            logger.error("Simulation '%s' failed handling %r at t=%s", self.name, event, self.now)
            raise
        self._events_processed += 1
        if follow_ups:
            for follow_up in follow_ups:
                self.push(follow_up)

    def _validate(self, trajectories: list[Trajectory]) -> None:
        """Check every static name reachable from ``trajectories`` is registered."""
        references = []
        for trajectory in trajectories:
            for activity in trajectory.walk():
                for kind, name in activity.references():
                    if kind == "send":
                        self.signals.register(name)
                    else:
                        references.append((kind, name))

        for kind, name in references:
            if kind == "resource" and name not in self._resources:
                raise UnknownResourceOrSignalError("resource", name)
            if kind == "source" and name not in self._sources:
                raise UnknownResourceOrSignalError("source", name)
            if kind == "signal" and name not in self.signals.known:
                raise UnknownResourceOrSignalError("signal", name)

    # ------------------------------------------------------------------
    # Arrival bookkeeping
    # ------------------------------------------------------------------

    def _register_arrival(self, arrival: Arrival) -> None:
        self._arrivals[id(arrival)] = arrival
        if arrival._counts_as_arrival:
            self._outcomes["started"] += 1

    def _arrival_done(self, arrival: Arrival, monitored: bool) -> None:
        self._arrivals.pop(id(arrival), None)
        if not arrival._counts_as_arrival:
            return
        if not monitored:
            # Dropped clones never left the system on their own.
            self._outcomes["started"] -= 1
            return
        self._outcomes[arrival.state.value] += 1
        if arrival.mon >= 1:
            self.monitor.record_arrival(
                arrival.name,
                arrival.start_time,
                arrival.end_time,
                arrival.activity_time,
                arrival.finished,
                arrival.state.value,
            )

    def pending_batch(self, key: Any) -> Batch | None:
        return self._batches.get(key)

    def add_pending_batch(self, batch: Batch) -> None:
        self._batches[batch.key] = batch

    def next_batch_name(self) -> str:
        return f"batch{next(self._batch_ids)}"

    def _drop_batch(self, batch: Batch) -> None:
        if self._batches.get(batch.key) is batch:
            del self._batches[batch.key]

    def activity_state(self, activity: object, factory: Callable[[], Any]) -> Any:
        """Per-run state of one activity, e.g. a round-robin cursor."""
        key = id(activity)
        if key not in self._activity_state:
            self._activity_state[key] = factory()
        return self._activity_state[key]

    @property
    def arrivals_in_system(self) -> list[Arrival]:
        return [a for a in self._arrivals.values() if a._counts_as_arrival]

    # ------------------------------------------------------------------
    # Getters and setters
    # ------------------------------------------------------------------

    def get_resource(self, name: str) -> Resource:
        try:
            return self._resources[name]
        except KeyError:
            raise UnknownResourceOrSignalError("resource", name) from None

    def get_source(self, name: str) -> Source:
        try:
            return self._sources[name]
        except KeyError:
            raise UnknownResourceOrSignalError("source", name) from None

    def get_capacity(self, resource: str) -> float:
        return self.get_resource(resource).capacity

    def set_capacity(self, resource: str, value: float) -> None:
        self.get_resource(resource).set_capacity(value)

    def get_queue_size(self, resource: str) -> float:
        return self.get_resource(resource).queue_size

    def set_queue_size(self, resource: str, value: float) -> None:
        self.get_resource(resource).set_queue_size(value)

    def get_server_count(self, resource: str) -> float:
        return self.get_resource(resource).server_count

    def get_queue_count(self, resource: str) -> int:
        return self.get_resource(resource).queue_count

    def get_trajectory(self, source: str) -> Trajectory:
        return self.get_source(source).trajectory

    def set_trajectory(self, source: str, trajectory: Trajectory) -> None:
        """Give arrivals generated from now on a new trajectory."""
        target = self.get_source(source)
        self._validate([trajectory])
        target.set_trajectory(trajectory)

    def set_distribution(self, source: str, distribution: Any) -> None:
        self.get_source(source).set_distribution(distribution)

    def activate(self, source: str) -> None:
        self.get_source(source).activate()

    def deactivate(self, source: str) -> None:
        self.get_source(source).deactivate()

    def get_n_generated(self, source: str) -> int:
        return self.get_source(source).n_generated

    def get_global(self, key: str, default: Any = None) -> Any:
        return self._globals.get(key, default)

    def set_global(self, key: str, value: Any) -> None:
        self._globals[key] = value
        self.monitor.record_attribute(self.now, "", key, value)

    # ------------------------------------------------------------------
    # Monitor extracts
    # ------------------------------------------------------------------

    def get_mon_arrivals(self, per_resource: bool = False, ongoing: bool = False) -> pd.DataFrame:
        """Arrival rows; per resource when ``per_resource`` is set.

        With ``ongoing`` the arrivals still in the system are appended with
        ``end_time`` NaN and ``finished`` False.
        """
        if per_resource:
            return self.monitor.arrivals_per_resource()
        rows = None
        if ongoing:
            rows = [
                (a.name, a.start_time, math.nan, a.activity_time, False, None)
                for a in self.arrivals_in_system
                if a.mon >= 1
            ]
        return self.monitor.arrivals(rows)

    def get_mon_resources(self) -> pd.DataFrame:
        return self.monitor.resources()

    def get_mon_attributes(self) -> pd.DataFrame:
        return self.monitor.attributes()

    def __repr__(self) -> str:
        return (
            f"Simulation({self.name!r}, now={self.now}, resources={list(self._resources)}, "
            f"sources={list(self._sources)})"
        )
