"""Arrivals: runtime instances walking a trajectory.

An Arrival is an explicit resumable continuation. Its entire suspended state
is a stack of trajectory frames (the cursor) plus at most one pending event.
When resumed it executes zero-duration activities synchronously until an
activity consumes time or must wait, then suspends again:

- ``timeout`` schedules a resume event (SUSPENDED_TIMEOUT)
- ``seize`` on a busy resource waits in its queue (SUSPENDED_SEIZE)
- ``wait`` subscribes to signals (SUSPENDED_SIGNAL)
- ``batch`` parks the arrival in a pending batch (SUSPENDED_BATCH)

Every terminal outcome (finished, rejected, reneged) is written to the
monitor; none of them raise out of the simulation run.
"""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, Any

from trajsim.core.entity import Entity
from trajsim.core.event import Event, EventKind
from trajsim.errors import InvalidTimeError

if TYPE_CHECKING:
    from trajsim.components.resource import Resource
    from trajsim.components.signals import Subscription
    from trajsim.trajectory.trajectory import Trajectory

logger = logging.getLogger(__name__)


class ArrivalState(enum.Enum):
    CREATED = "created"
    RUNNING = "running"
    SUSPENDED_TIMEOUT = "suspended_timeout"
    SUSPENDED_SEIZE = "suspended_seize"
    SUSPENDED_SIGNAL = "suspended_signal"
    SUSPENDED_BATCH = "suspended_batch"
    FINISHED = "finished"
    REJECTED = "rejected"
    RENEGED = "reneged"

    @property
    def terminal(self) -> bool:
        return self in (ArrivalState.FINISHED, ArrivalState.REJECTED, ArrivalState.RENEGED)


class _Frame:
    """One level of the cursor: a trajectory and the index of the next activity."""

    __slots__ = ("continue_", "index", "trajectory")

    def __init__(self, trajectory: Trajectory, index: int = 0, continue_: bool = True):
        self.trajectory = trajectory
        self.index = index
        self.continue_ = continue_

    def copy(self) -> _Frame:
        return _Frame(self.trajectory, self.index, self.continue_)

    def __repr__(self) -> str:
        return f"_Frame({self.trajectory.name!r}, {self.index}, continue_={self.continue_})"


class CloneGroup:
    """Arrivals spawned by the same ``clone`` activity, for ``synchronize``."""

    __slots__ = ("live", "passed")

    def __init__(self) -> None:
        self.live = 1
        self.passed: set[int] = set()


class Arrival(Entity):
    """A transient entity traversing a trajectory.

    Args:
        name: Monitor name, usually ``"{source prefix}{n}"``.
        trajectory: Recipe to execute.
        priority: Queue priority at resources (higher is served first).
        preemptible: Minimum incoming priority that can NOT preempt this
            arrival; defaults to ``priority``.
        restart: Whether an interrupted timeout restarts from the beginning
            after preemption instead of resuming its remaining time.
        attributes: Initial attribute mapping.
        mon: Monitoring level (0 none, 1 arrival/resource rows, 2 also attributes).
    """

    _counts_as_arrival = True

    def __init__(
        self,
        name: str,
        trajectory: Trajectory,
        *,
        priority: int = 0,
        preemptible: int | None = None,
        restart: bool = False,
        attributes: dict[str, Any] | None = None,
        mon: int = 2,
    ):
        super().__init__(name)
        self._frames: list[_Frame] = [_Frame(trajectory, 0, True)]
        self.attributes: dict[str, Any] = dict(attributes or {})
        self.set_prioritization(priority, preemptible, restart)
        self.mon = mon

        self.state = ArrivalState.CREATED
        self.start_time: float | None = None
        self.end_time: float | None = None
        self._activity_time = 0.0
        self._exit_state = ArrivalState.FINISHED

        self._pending: Event | None = None
        self._timeout_started: float | None = None
        self._timeout_duration = 0.0
        self._interrupted: float | None = None

        self._held: dict[str, Resource] = {}
        self._queued_on: Resource | None = None
        self._on_grant: tuple[Trajectory, bool] | None = None
        self._wait_sub: Subscription | None = None
        self._renege_timer: Event | None = None
        self._renege_subs: list[Subscription] = []
        self._batch: Batch | None = None
        self._pending_batch: Batch | None = None
        self._clone_group: CloneGroup | None = None
        self._rollbacks: dict[int, int] = {}
        self._selected: dict[int, str] = {}

    # ------------------------------------------------------------------
    # Public accessors
    # ------------------------------------------------------------------

    @property
    def activity_time(self) -> float:
        """Simulated time spent in timeouts so far."""
        return self._activity_time

    @property
    def finished(self) -> bool:
        return self.state is ArrivalState.FINISHED

    @property
    def held_resources(self) -> list[str]:
        return list(self._held)

    def get_attribute(self, key: str, default: Any = None) -> Any:
        return self.attributes.get(key, default)

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value
        if self.mon >= 2:
            self.sim.monitor.record_attribute(self.now, self.name, key, value)

    def set_prioritization(self, priority: int, preemptible: int | None = None, restart: bool = False) -> None:
        if preemptible is None:
            preemptible = priority
        if preemptible < priority:
            raise ValueError(f"preemptible ({preemptible}) must be >= priority ({priority})")
        self.priority = priority
        self.preemptible = preemptible
        self.restart = restart

    def selected(self, id: int = 0) -> str:
        """Name of the resource chosen by the last ``select`` with this id."""
        try:
            return self._selected[id]
        except KeyError:
            raise RuntimeError(f"'{self.name}' has no resource selected with id={id}") from None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Begin executing the trajectory at the current time."""
        self.start_time = self.now
        self.sim._register_arrival(self)
        self.state = ArrivalState.RUNNING
        logger.debug("[%s] started at t=%s", self.name, self.now)
        self._advance()

    def handle_event(self, event: Event) -> None:
        if self.state.terminal or (event is not self._pending and event is not self._renege_timer):
            return None
        if event.kind is EventKind.ARRIVAL_TIMER:
            self._renege_timer = None
            out, keep_seized = event.payload
            self.renege(out, keep_seized)
            return None

        self._pending = None
        if self._timeout_started is not None:
            self._activity_time += self.now - self._timeout_started
            self._timeout_started = None
        self.state = ArrivalState.RUNNING
        self._advance()
        return None

    def _advance(self) -> None:
        while self.state is ArrivalState.RUNNING:
            activity = self._next_activity()
            if activity is None:
                self._terminate(self._exit_state, warn=True)
                return
            logger.debug("[%s] t=%s %r", self.name, self.now, activity)
            activity.execute(self)

    def _next_activity(self):
        while self._frames:
            frame = self._frames[-1]
            if frame.index < len(frame.trajectory):
                activity = frame.trajectory[frame.index]
                frame.index += 1
                return activity
            self._frames.pop()
            if not frame.continue_:
                self._frames.clear()
        return None

    def enter(self, trajectory: Trajectory, continue_: bool = True) -> None:
        """Route into a sub-trajectory. Empty sub-trajectories are skipped."""
        if len(trajectory) == 0:
            return
        self._frames.append(_Frame(trajectory, 0, continue_))

    def rewind(self, steps: int) -> None:
        """Move the cursor back ``steps`` activities, crossing into parent frames."""
        while steps > 0:
            frame = self._frames[-1]
            if frame.index >= steps:
                frame.index -= steps
                return
            if len(self._frames) == 1:
                frame.index = 0
                return
            steps -= frame.index
            self._frames.pop()

    def _wake(self) -> None:
        """Resume at the current instant through the event queue."""
        self._pending = self.schedule(0.0, EventKind.ARRIVAL_RESUME, f"resume:{self.name}")

    # ------------------------------------------------------------------
    # Suspension points
    # ------------------------------------------------------------------

    def suspend_for(self, delay: float) -> None:
        if delay < 0:
            raise InvalidTimeError(self.now + delay, self.now)
        self.state = ArrivalState.SUSPENDED_TIMEOUT
        self._timeout_started = self.now
        self._timeout_duration = delay
        self._pending = self.schedule(delay, EventKind.ARRIVAL_RESUME, f"timeout:{self.name}")

    def wait_for(self, signals: list[str]) -> None:
        self.state = ArrivalState.SUSPENDED_SIGNAL
        self._wait_sub = self.sim.signals.subscribe(self, signals, self._on_signal)

    def _on_signal(self) -> None:
        self._wait_sub = None
        self._wake()

    def queue_on(self, resource: Resource, on_grant: tuple[Trajectory, bool] | None = None) -> None:
        self.state = ArrivalState.SUSPENDED_SEIZE
        self._queued_on = resource
        self._on_grant = on_grant

    def _on_granted(self, resource: Resource) -> None:
        self._queued_on = None
        if self._interrupted is not None:
            remaining, self._interrupted = self._interrupted, None
            self.suspend_for(remaining)
            return
        if self._on_grant is not None:
            trajectory, continue_ = self._on_grant
            self._on_grant = None
            self.enter(trajectory, continue_)
        self._wake()

    def _on_preempted(self, resource: Resource) -> None:
        remaining = self._pending.time - self.now
        self._activity_time += self.now - self._timeout_started
        self._pending.cancel()
        self._pending = None
        self._timeout_started = None
        self._interrupted = self._timeout_duration if self.restart else remaining
        self.state = ArrivalState.SUSPENDED_SEIZE
        self._queued_on = resource

    def _note_held(self, resource: Resource) -> None:
        self._held[resource.name] = resource

    def _note_released(self, resource: Resource) -> None:
        self._held.pop(resource.name, None)

    # ------------------------------------------------------------------
    # Reneging
    # ------------------------------------------------------------------

    def set_renege_timer(self, delay: float, out: Trajectory | None, keep_seized: bool) -> None:
        if self._renege_timer is not None:
            self._renege_timer.cancel()
        self._renege_timer = self.schedule(
            delay, EventKind.ARRIVAL_TIMER, f"renege:{self.name}", payload=(out, keep_seized)
        )

    def set_renege_signal(self, signal: str, out: Trajectory | None, keep_seized: bool) -> None:
        self._renege_subs.append(
            self.sim.signals.subscribe(self, [signal], lambda: self.renege(out, keep_seized))
        )

    def abort_renege(self) -> None:
        if self._renege_timer is not None:
            self._renege_timer.cancel()
            self._renege_timer = None
        for sub in self._renege_subs:
            sub.cancel()
        self._renege_subs.clear()

    def renege(self, out: Trajectory | None = None, keep_seized: bool = False) -> None:
        """Abandon the trajectory, optionally following ``out`` first."""
        if self.state.terminal:
            return
        if self._batch is not None and self._pending_batch is None:
            self._batch.renege(out, keep_seized)
            return

        logger.debug("[%s] reneging at t=%s", self.name, self.now)
        was_running = self.state is ArrivalState.RUNNING
        self._withdraw()
        self.abort_renege()
        if out is None or len(out) == 0:
            self._terminate(ArrivalState.RENEGED)
            return

        if not keep_seized:
            self._release_all(warn=False)
        self._frames = [_Frame(out, 0, False)]
        self._exit_state = ArrivalState.RENEGED
        if not was_running:
            self.suspend_for(0.0)

    def reject(self) -> None:
        """Terminate as rejected (no room at a resource)."""
        logger.debug("[%s] rejected at t=%s", self.name, self.now)
        self._terminate(ArrivalState.REJECTED)

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    def _withdraw(self) -> None:
        """Cancel whatever the arrival is currently suspended on."""
        if self._pending is not None:
            if self._timeout_started is not None:
                self._activity_time += self.now - self._timeout_started
            self._pending.cancel()
            self._pending = None
        self._timeout_started = None
        self._interrupted = None
        self._on_grant = None
        if self._queued_on is not None:
            self._queued_on.remove_waiter(self)
            self._queued_on = None
        if self._wait_sub is not None:
            self._wait_sub.cancel()
            self._wait_sub = None
        if self._pending_batch is not None:
            self._pending_batch.remove_member(self)

    def _release_all(self, warn: bool) -> None:
        for resource in list(self._held.values()):
            if warn:
                logger.warning(
                    "'%s' left holding %s of resource '%s'; released at exit",
                    self.name, resource.holds(self), resource.name,
                )
            resource.release(self)

    def _terminate(self, state: ArrivalState, *, monitored: bool = True, warn: bool = False) -> None:
        if self.state.terminal:
            return
        self._withdraw()
        self.abort_renege()
        self._release_all(warn=warn)
        self.state = state
        self.end_time = self.now
        self._frames = []
        if self._clone_group is not None:
            self._clone_group.live -= 1
        logger.debug("[%s] %s at t=%s", self.name, state.value, self.now)
        self.sim._arrival_done(self, monitored)

    def remove(self, monitored: bool = False) -> None:
        """Drop a clone at a synchronize point."""
        self._terminate(ArrivalState.FINISHED, monitored=monitored)

    # ------------------------------------------------------------------
    # Cloning
    # ------------------------------------------------------------------

    def spawn_clone(self) -> Arrival:
        clone = Arrival(
            self.name,
            self._frames[0].trajectory,
            priority=self.priority,
            preemptible=self.preemptible,
            restart=self.restart,
            attributes=self.attributes,
            mon=self.mon,
        )
        clone.attach(self.sim)
        clone._frames = [frame.copy() for frame in self._frames]
        clone._activity_time = self._activity_time
        clone._exit_state = self._exit_state
        clone._selected = dict(self._selected)
        clone._clone_group = self._clone_group
        clone.start_time = self.start_time
        clone.state = ArrivalState.SUSPENDED_TIMEOUT
        self.sim._register_arrival(clone)
        return clone

    def __repr__(self) -> str:
        return f"Arrival({self.name!r}, state={self.state.value})"


class Batch(Arrival):
    """A group of arrivals that proceeds through the trajectory as one unit.

    Created when the first arrival reaches a ``batch`` activity and started
    when ``size`` members have joined or the batch timeout fires. The batch
    seizes and releases resources once on behalf of all members. Non-permanent
    batches can be split again with ``separate``.
    """

    _counts_as_arrival = False

    def __init__(
        self,
        name: str,
        first: Arrival,
        *,
        key: Any,
        size: int,
        permanent: bool,
    ):
        super().__init__(name, first._frames[0].trajectory, mon=first.mon)
        self._frames = [frame.copy() for frame in first._frames]
        self.key = key
        self.size = size
        self.permanent = permanent
        self.members: list[Arrival] = []
        self.released = False
        self._timer: Event | None = None

    def add_member(self, arrival: Arrival) -> None:
        self.members.append(arrival)
        arrival._batch = self
        arrival._pending_batch = self
        arrival.state = ArrivalState.SUSPENDED_BATCH

    def remove_member(self, arrival: Arrival) -> None:
        self.members.remove(arrival)
        arrival._batch = None
        arrival._pending_batch = None
        if not self.members and not self.released:
            if self._timer is not None:
                self._timer.cancel()
            self.sim._drop_batch(self)

    def start_timer(self, timeout: float) -> None:
        self._timer = self.schedule(timeout, EventKind.ARRIVAL_TIMER, f"batch_timeout:{self.name}")

    def release(self) -> None:
        """Start the batch as a unit."""
        if self.released:
            return
        self.released = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.sim._drop_batch(self)
        for member in self.members:
            member._pending_batch = None
        top = max(member.priority for member in self.members)
        self.set_prioritization(top)
        self.start_time = self.now
        self.sim._register_arrival(self)
        self.state = ArrivalState.SUSPENDED_BATCH
        logger.debug("[%s] released with %d members at t=%s", self.name, len(self.members), self.now)
        self._wake()

    def handle_event(self, event: Event) -> None:
        if event is self._timer:
            self._timer = None
            self.release()
            return None
        return super().handle_event(event)

    def separate(self) -> None:
        """Split into the original members, each continuing after this point."""
        if self.permanent:
            return
        for member in self.members:
            member._batch = None
            member._frames = [frame.copy() for frame in self._frames]
            member._activity_time += self._activity_time
            member.state = ArrivalState.SUSPENDED_BATCH
            member._wake()
        self.members = []
        self._terminate(ArrivalState.FINISHED, monitored=False, warn=True)

    def _terminate(self, state: ArrivalState, *, monitored: bool = True, warn: bool = False) -> None:
        if self.state.terminal:
            return
        members, self.members = self.members, []
        super()._terminate(state, monitored=False, warn=warn)
        for member in members:
            member._batch = None
            member._activity_time += self._activity_time
            member._terminate(state, monitored=monitored)

    def __repr__(self) -> str:
        return f"Batch({self.name!r}, members={len(self.members)}, state={self.state.value})"
