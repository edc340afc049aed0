"""Activities: the steps of a trajectory.

Each activity reads and writes the executing arrival's local state plus the
resource, source or signal it names. Parameters may be constants or
callables; a callable is invoked with the executing arrival and only its
return value is used.

``execute`` either returns with the arrival still RUNNING (the next activity
runs synchronously) or leaves the arrival suspended or terminated.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Sequence
from typing import TYPE_CHECKING, Any

from trajsim.components.arrival import ArrivalState, Batch
from trajsim.errors import ResourceSaturatedError

if TYPE_CHECKING:
    from trajsim.components.arrival import Arrival
    from trajsim.trajectory.trajectory import Trajectory

logger = logging.getLogger(__name__)
trajectory_logger = logging.getLogger("trajsim.trajectory")

SELECT_POLICIES = ("shortest-queue", "round-robin", "first-available", "random")


def evaluate(value: Any, arrival: Arrival) -> Any:
    """Resolve a constant-or-callable parameter for ``arrival``."""
    if callable(value):
        return value(arrival)
    return value


def _names(value: Any, arrival: Arrival) -> list[str]:
    value = evaluate(value, arrival)
    if isinstance(value, str):
        return [value]
    return list(value)


def _static_names(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return [v for v in value if isinstance(v, str)]
    return []


def _modify(old: Any, new: Any, mod: str | None) -> Any:
    if mod is None:
        return new
    if mod == "+":
        return old + new
    if mod == "*":
        return old * new
    raise ValueError(f"unknown mod {mod!r}, expected None, '+' or '*'")


class Selected:
    """Placeholder for the resource chosen by a ``select`` activity."""

    __slots__ = ("id",)

    def __init__(self, id: int = 0):
        self.id = id

    def __repr__(self) -> str:
        return f"Selected({self.id})"


class Activity(ABC):
    """One step of a trajectory."""

    @abstractmethod
    def execute(self, arrival: Arrival) -> None:
        raise NotImplementedError

    def children(self) -> tuple[Trajectory, ...]:
        """Sub-trajectories reachable from this activity."""
        return ()

    def references(self) -> Iterator[tuple[str, str]]:
        """Static ``(kind, name)`` references, kind in resource/source/signal/send."""
        return iter(())

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class Timeout(Activity):
    def __init__(self, duration: float | Callable[[Arrival], float]):
        self.duration = duration

    def execute(self, arrival: Arrival) -> None:
        arrival.suspend_for(float(evaluate(self.duration, arrival)))

    def __repr__(self) -> str:
        return f"Timeout({self.duration!r})"


class _ResourceActivity(Activity):
    def __init__(self, resource: str | Selected | Callable[[Arrival], str]):
        self.resource = resource

    def _resolve(self, arrival: Arrival):
        if isinstance(self.resource, Selected):
            name = arrival.selected(self.resource.id)
        else:
            name = evaluate(self.resource, arrival)
        return arrival.sim.get_resource(name)

    def references(self) -> Iterator[tuple[str, str]]:
        if isinstance(self.resource, str):
            yield "resource", self.resource


class Seize(_ResourceActivity):
    """Seize ``amount`` units, waiting in the queue when all are busy.

    Args:
        post_seize: Optional sub-trajectory followed once the units are held.
        reject: Optional sub-trajectory followed instead of terminating when
            there is no queue room.
        continue_: Whether to continue after ``post_seize`` and ``reject``.
    """

    def __init__(
        self,
        resource: str | Selected | Callable[[Arrival], str],
        amount: float | Callable[[Arrival], float] = 1,
        continue_: tuple[bool, bool] = (True, False),
        post_seize: Trajectory | None = None,
        reject: Trajectory | None = None,
    ):
        super().__init__(resource)
        self.amount = amount
        self.continue_ = tuple(continue_)
        self.post_seize = post_seize
        self.reject = reject

    def execute(self, arrival: Arrival) -> None:
        resource = self._resolve(arrival)
        amount = evaluate(self.amount, arrival)
        on_grant = (self.post_seize, self.continue_[0]) if self.post_seize is not None else None
        try:
            granted = resource.seize(arrival, amount)
        except ResourceSaturatedError:
            if self.reject is None:
                arrival.reject()
            else:
                arrival.enter(self.reject, self.continue_[1])
            return
        if granted:
            if on_grant is not None:
                arrival.enter(*on_grant)
        else:
            arrival.queue_on(resource, on_grant)

    def children(self) -> tuple[Trajectory, ...]:
        return tuple(t for t in (self.post_seize, self.reject) if t is not None)

    def __repr__(self) -> str:
        return f"Seize({self.resource!r}, {self.amount!r})"


class Release(_ResourceActivity):
    """Release ``amount`` units, or everything held when ``amount`` is None."""

    def __init__(self, resource, amount: float | Callable[[Arrival], float] | None = None):
        super().__init__(resource)
        self.amount = amount

    def execute(self, arrival: Arrival) -> None:
        resource = self._resolve(arrival)
        resource.release(arrival, evaluate(self.amount, arrival))

    def __repr__(self) -> str:
        return f"Release({self.resource!r}, {self.amount!r})"


class Select(Activity):
    """Choose one of several resources for later ``seize_selected``."""

    def __init__(self, resources: Sequence[str] | Callable[[Arrival], Sequence[str]], policy: str = "shortest-queue", id: int = 0):
        if policy not in SELECT_POLICIES:
            raise ValueError(f"policy must be one of {SELECT_POLICIES}, got {policy!r}")
        self.resources = resources
        self.policy = policy
        self.id = id

    def execute(self, arrival: Arrival) -> None:
        sim = arrival.sim
        candidates = [sim.get_resource(name) for name in _names(self.resources, arrival)]
        if not candidates:
            raise ValueError("select needs at least one resource")

        if self.policy == "shortest-queue":
            chosen = min(candidates, key=lambda r: r.server_count + r.queue_count - r.capacity)
        elif self.policy == "round-robin":
            state = sim.activity_state(self, lambda: {"next": 0})
            chosen = candidates[state["next"] % len(candidates)]
            state["next"] += 1
        elif self.policy == "first-available":
            chosen = next(
                (r for r in candidates if r.server_count < r.capacity),
                next((r for r in candidates if r.queue_count < r.queue_size), candidates[0]),
            )
        else:
            chosen = sim.rng.choice(candidates)
        arrival._selected[self.id] = chosen.name

    def references(self) -> Iterator[tuple[str, str]]:
        for name in _static_names(self.resources):
            yield "resource", name

    def __repr__(self) -> str:
        return f"Select({self.resources!r}, {self.policy!r})"


class SetAttribute(Activity):
    """Set one or more attributes, on the arrival or as globals.

    Args:
        keys: A key or a list of keys.
        values: A value, a list of values, or a callable returning either.
        mod: None to overwrite, ``"+"`` to add, ``"*"`` to multiply.
        init: Starting value for ``mod`` when the key is not set yet.
        global_: Write simulation globals instead of arrival attributes.
    """

    def __init__(self, keys, values, mod: str | None = None, init: Any = 0, global_: bool = False):
        if mod not in (None, "+", "*"):
            raise ValueError(f"unknown mod {mod!r}, expected None, '+' or '*'")
        self.keys = [keys] if isinstance(keys, str) else list(keys)
        self.values = values
        self.mod = mod
        self.init = init
        self.global_ = global_

    def execute(self, arrival: Arrival) -> None:
        values = evaluate(self.values, arrival)
        if len(self.keys) == 1 and not isinstance(values, (list, tuple)):
            values = [values]
        if len(values) != len(self.keys):
            raise ValueError(f"got {len(values)} values for {len(self.keys)} keys")

        sim = arrival.sim
        for key, value in zip(self.keys, values):
            if self.global_:
                sim.set_global(key, _modify(sim.get_global(key, self.init), value, self.mod))
            else:
                arrival.set_attribute(key, _modify(arrival.get_attribute(key, self.init), value, self.mod))

    def __repr__(self) -> str:
        kind = "SetGlobal" if self.global_ else "SetAttribute"
        return f"{kind}({self.keys!r}, {self.values!r})"


class SetPrioritization(Activity):
    """Set ``(priority, preemptible, restart)``."""

    def __init__(self, values):
        self.values = values

    def execute(self, arrival: Arrival) -> None:
        priority, preemptible, restart = evaluate(self.values, arrival)
        arrival.set_prioritization(priority, preemptible, restart)


class Branch(Activity):
    """Route into one sub-trajectory chosen by ``option``.

    ``option(arrival)`` returns a 1-based index; 0 skips the branch. After the
    chosen sub-trajectory the arrival continues past the branch if the
    matching ``continue_`` flag is set, otherwise it leaves the system.
    """

    def __init__(self, option: Callable[[Arrival], int], continue_, trajectories: Sequence[Trajectory]):
        if not trajectories:
            raise ValueError("branch needs at least one trajectory")
        if isinstance(continue_, bool):
            continue_ = [continue_] * len(trajectories)
        if len(continue_) != len(trajectories):
            raise ValueError("continue_ must have one flag per trajectory")
        self.option = option
        self.continue_ = list(continue_)
        self.trajectories = tuple(trajectories)

    def execute(self, arrival: Arrival) -> None:
        option = evaluate(self.option, arrival)
        if not isinstance(option, int) or not 0 <= option <= len(self.trajectories):
            raise ValueError(f"branch option must be an int in [0, {len(self.trajectories)}], got {option!r}")
        if option == 0:
            return
        arrival.enter(self.trajectories[option - 1], self.continue_[option - 1])

    def children(self) -> tuple[Trajectory, ...]:
        return self.trajectories

    def __repr__(self) -> str:
        return f"Branch({len(self.trajectories)} options)"


class Clone(Activity):
    """Split the arrival into ``n`` independent copies.

    The original follows ``trajectories[0]`` and clone ``i`` follows
    ``trajectories[i]`` (or nothing when fewer are given); all of them then
    continue past the clone point. Clones are dispatched, not joined, unless
    a later ``synchronize`` is reached.
    """

    def __init__(self, n: int | Callable[[Arrival], int], trajectories: Sequence[Trajectory] = ()):
        self.n = n
        self.trajectories = tuple(trajectories)

    def execute(self, arrival: Arrival) -> None:
        from trajsim.components.arrival import CloneGroup

        n = int(evaluate(self.n, arrival))
        if n < 1:
            raise ValueError(f"clone count must be >= 1, got {n}")
        if arrival._clone_group is None:
            arrival._clone_group = CloneGroup()

        for i in range(1, n):
            clone = arrival.spawn_clone()
            arrival._clone_group.live += 1
            if i < len(self.trajectories):
                clone.enter(self.trajectories[i], True)
            clone._wake()
        if self.trajectories:
            arrival.enter(self.trajectories[0], True)

    def children(self) -> tuple[Trajectory, ...]:
        return self.trajectories

    def __repr__(self) -> str:
        return f"Clone({self.n!r})"


class Synchronize(Activity):
    """Join clones: only one of the clone group continues.

    With ``wait=True`` the last clone to arrive continues; with ``wait=False``
    the first one does. The others are removed, and written to the monitor
    only when ``mon_all`` is set.
    """

    def __init__(self, wait: bool = True, mon_all: bool = False):
        self.wait = wait
        self.mon_all = mon_all

    def execute(self, arrival: Arrival) -> None:
        group = arrival._clone_group
        if group is None:
            return
        if not self.wait:
            if id(self) in group.passed:
                arrival.remove(monitored=self.mon_all)
            else:
                group.passed.add(id(self))
        elif group.live > 1:
            arrival.remove(monitored=self.mon_all)

    def __repr__(self) -> str:
        return f"Synchronize(wait={self.wait})"


class Rollback(Activity):
    """Jump back ``amount`` activities, at most ``times`` times in a row.

    The per-arrival counter resets once it falls through, so a later visit
    starts counting again. When ``check`` is given it replaces the counter:
    the jump happens while ``check(arrival)`` is true.
    """

    def __init__(self, amount: int, times: float = 1, check: Callable[[Arrival], bool] | None = None):
        if amount < 0:
            raise ValueError(f"amount must be >= 0, got {amount}")
        if check is None and times < 0:
            raise ValueError(f"times must be >= 0, got {times!r}")
        self.amount = amount
        self.times = times
        self.check = check

    def execute(self, arrival: Arrival) -> None:
        if self.check is not None:
            if not self.check(arrival):
                return
        else:
            key = id(self)
            remaining = arrival._rollbacks.get(key, self.times)
            if remaining <= 0:
                arrival._rollbacks.pop(key, None)
                return
            arrival._rollbacks[key] = remaining - 1
        # The cursor already points past this activity.
        arrival.rewind(self.amount + 1)

    def __repr__(self) -> str:
        return f"Rollback({self.amount}, times={self.times})"


class Send(Activity):
    def __init__(self, signals, delay: float | Callable[[Arrival], float] = 0):
        self.signals = signals
        self.delay = delay

    def execute(self, arrival: Arrival) -> None:
        arrival.sim.signals.send(_names(self.signals, arrival), float(evaluate(self.delay, arrival)))

    def references(self) -> Iterator[tuple[str, str]]:
        for name in _static_names(self.signals):
            yield "send", name

    def __repr__(self) -> str:
        return f"Send({self.signals!r}, delay={self.delay!r})"


class Wait(Activity):
    """Suspend until any of ``signals`` is broadcast."""

    def __init__(self, signals):
        self.signals = signals

    def execute(self, arrival: Arrival) -> None:
        arrival.wait_for(_names(self.signals, arrival))

    def references(self) -> Iterator[tuple[str, str]]:
        for name in _static_names(self.signals):
            yield "signal", name

    def __repr__(self) -> str:
        return f"Wait({self.signals!r})"


class RenegeIn(Activity):
    """Arm a timer after which the arrival abandons its trajectory."""

    def __init__(self, t, out: Trajectory | None = None, keep_seized: bool = False):
        self.t = t
        self.out = out
        self.keep_seized = keep_seized

    def execute(self, arrival: Arrival) -> None:
        arrival.set_renege_timer(float(evaluate(self.t, arrival)), self.out, self.keep_seized)

    def children(self) -> tuple[Trajectory, ...]:
        return (self.out,) if self.out is not None else ()


class RenegeIf(Activity):
    """Abandon the trajectory as soon as ``signal`` is broadcast."""

    def __init__(self, signal, out: Trajectory | None = None, keep_seized: bool = False):
        self.signal = signal
        self.out = out
        self.keep_seized = keep_seized

    def execute(self, arrival: Arrival) -> None:
        arrival.set_renege_signal(evaluate(self.signal, arrival), self.out, self.keep_seized)

    def children(self) -> tuple[Trajectory, ...]:
        return (self.out,) if self.out is not None else ()

    def references(self) -> Iterator[tuple[str, str]]:
        if isinstance(self.signal, str):
            yield "signal", self.signal


class RenegeAbort(Activity):
    def execute(self, arrival: Arrival) -> None:
        arrival.abort_renege()


class Leave(Activity):
    """Renege with the given probability, evaluated when executed."""

    def __init__(self, probability, out: Trajectory | None = None, keep_seized: bool = False):
        self.probability = probability
        self.out = out
        self.keep_seized = keep_seized

    def execute(self, arrival: Arrival) -> None:
        if arrival.sim.rng.random() < float(evaluate(self.probability, arrival)):
            arrival.renege(self.out, self.keep_seized)

    def children(self) -> tuple[Trajectory, ...]:
        return (self.out,) if self.out is not None else ()

    def __repr__(self) -> str:
        return f"Leave({self.probability!r})"


class _SourceActivity(Activity):
    def __init__(self, source):
        self.source = source

    def _resolve(self, arrival: Arrival):
        return arrival.sim.get_source(evaluate(self.source, arrival))

    def references(self) -> Iterator[tuple[str, str]]:
        if isinstance(self.source, str):
            yield "source", self.source

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.source!r})"


class Activate(_SourceActivity):
    def execute(self, arrival: Arrival) -> None:
        self._resolve(arrival).activate()


class Deactivate(_SourceActivity):
    def execute(self, arrival: Arrival) -> None:
        self._resolve(arrival).deactivate()


class SetTrajectory(_SourceActivity):
    def __init__(self, source, trajectory: Trajectory):
        super().__init__(source)
        self.trajectory = trajectory

    def execute(self, arrival: Arrival) -> None:
        arrival.sim.set_trajectory(self._resolve(arrival).name, self.trajectory)

    def children(self) -> tuple[Trajectory, ...]:
        return (self.trajectory,)


class SetSource(_SourceActivity):
    def __init__(self, source, distribution):
        super().__init__(source)
        self.distribution = distribution

    def execute(self, arrival: Arrival) -> None:
        self._resolve(arrival).set_distribution(self.distribution)


class SetCapacity(_ResourceActivity):
    def __init__(self, resource, value, mod: str | None = None):
        super().__init__(resource)
        self.value = value
        self.mod = mod

    def execute(self, arrival: Arrival) -> None:
        resource = self._resolve(arrival)
        resource.set_capacity(_modify(resource.capacity, evaluate(self.value, arrival), self.mod))

    def __repr__(self) -> str:
        return f"SetCapacity({self.resource!r}, {self.value!r})"


class SetQueueSize(_ResourceActivity):
    def __init__(self, resource, value, mod: str | None = None):
        super().__init__(resource)
        self.value = value
        self.mod = mod

    def execute(self, arrival: Arrival) -> None:
        resource = self._resolve(arrival)
        resource.set_queue_size(_modify(resource.queue_size, evaluate(self.value, arrival), self.mod))

    def __repr__(self) -> str:
        return f"SetQueueSize({self.resource!r}, {self.value!r})"


class Log(Activity):
    """Write a message to the ``trajsim.trajectory`` logger."""

    def __init__(self, message, level: str | int = "INFO"):
        self.message = message
        self.level = level if isinstance(level, int) else logging.getLevelName(level.upper())

    def execute(self, arrival: Arrival) -> None:
        now = arrival.now
        trajectory_logger.log(
            self.level, "%s: %s: %s", now, arrival.name, evaluate(self.message, arrival),
            extra={"sim_time": now},
        )


class BatchActivity(Activity):
    """Collect arrivals into a batch that continues as one unit.

    Args:
        n: Batch size that triggers release.
        timeout: Release an incomplete batch this long after its first
            member joined; 0 waits for ``n`` members indefinitely.
        permanent: Whether ``separate`` is ignored for this batch.
        name: Share one pending batch between every activity using the name.
        rule: Arrivals for which ``rule(arrival)`` is false skip the batch.
    """

    def __init__(self, n: int, timeout: float = 0, permanent: bool = False, name: str = "", rule=None):
        if n < 1:
            raise ValueError(f"batch size must be >= 1, got {n}")
        if timeout < 0:
            raise ValueError(f"timeout must be >= 0, got {timeout}")
        self.n = n
        self.timeout = timeout
        self.permanent = permanent
        self.name = name
        self.rule = rule

    def execute(self, arrival: Arrival) -> None:
        if self.rule is not None and not self.rule(arrival):
            return
        sim = arrival.sim
        key = ("name", self.name) if self.name else ("activity", id(self))
        batch = sim.pending_batch(key)
        if batch is None:
            batch = Batch(sim.next_batch_name(), arrival, key=key, size=self.n, permanent=self.permanent)
            batch.attach(sim)
            sim.add_pending_batch(batch)
            if self.timeout > 0:
                batch.start_timer(self.timeout)
        batch.add_member(arrival)
        if len(batch.members) >= batch.size:
            batch.release()

    def __repr__(self) -> str:
        return f"Batch(n={self.n}, timeout={self.timeout})"


class Separate(Activity):
    """Split a non-permanent batch back into its members."""

    def execute(self, arrival: Arrival) -> None:
        if isinstance(arrival, Batch):
            arrival.separate()
        elif arrival.state is ArrivalState.RUNNING:
            logger.debug("[%s] separate on a non-batch arrival; ignored", arrival.name)
