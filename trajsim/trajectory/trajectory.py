"""Immutable, composable sequences of activities."""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from typing import Any

from trajsim.trajectory import activities as act


class Trajectory:
    """An ordered recipe of activities for arrivals to execute.

    Every builder method returns a new Trajectory with the activity appended;
    the receiver is never modified, so a trajectory can be shared between
    sources, branches and running arrivals.

    Example::

        patient = (
            Trajectory("patient")
            .seize("nurse")
            .timeout(lambda arrival: random.expovariate(1 / 15))
            .release("nurse")
        )
    """

    __slots__ = ("_activities", "name")

    def __init__(self, name: str = "anonymous", activities: Sequence[act.Activity] = ()):
        self.name = name
        self._activities: tuple[act.Activity, ...] = tuple(activities)

    # ------------------------------------------------------------------
    # Sequence protocol
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._activities)

    def __iter__(self) -> Iterator[act.Activity]:
        return iter(self._activities)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return Trajectory(self.name, self._activities[index])
        return self._activities[index]

    def __add__(self, other: Trajectory) -> Trajectory:
        if not isinstance(other, Trajectory):
            return NotImplemented
        return Trajectory(self.name, self._activities + other._activities)

    def walk(self) -> Iterator[act.Activity]:
        """Yield every activity, descending into sub-trajectories."""
        for activity in self._activities:
            yield activity
            for child in activity.children():
                yield from child.walk()

    def append(self, activity: act.Activity) -> Trajectory:
        return Trajectory(self.name, self._activities + (activity,))

    def __repr__(self) -> str:
        return f"Trajectory({self.name!r}, {len(self._activities)} activities)"

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    def timeout(self, duration: float | Callable[[Any], float]) -> Trajectory:
        return self.append(act.Timeout(duration))

    def seize(
        self,
        resource,
        amount=1,
        *,
        continue_: tuple[bool, bool] = (True, False),
        post_seize: Trajectory | None = None,
        reject: Trajectory | None = None,
    ) -> Trajectory:
        return self.append(act.Seize(resource, amount, continue_, post_seize, reject))

    def release(self, resource, amount=None) -> Trajectory:
        return self.append(act.Release(resource, amount))

    def select(self, resources, policy: str = "shortest-queue", id: int = 0) -> Trajectory:
        return self.append(act.Select(resources, policy, id))

    def seize_selected(
        self,
        amount=1,
        id: int = 0,
        *,
        continue_: tuple[bool, bool] = (True, False),
        post_seize: Trajectory | None = None,
        reject: Trajectory | None = None,
    ) -> Trajectory:
        return self.append(act.Seize(act.Selected(id), amount, continue_, post_seize, reject))

    def release_selected(self, amount=None, id: int = 0) -> Trajectory:
        return self.append(act.Release(act.Selected(id), amount))

    def set_attribute(self, keys, values, mod: str | None = None, init: Any = 0) -> Trajectory:
        return self.append(act.SetAttribute(keys, values, mod, init))

    def set_global(self, keys, values, mod: str | None = None, init: Any = 0) -> Trajectory:
        return self.append(act.SetAttribute(keys, values, mod, init, global_=True))

    def set_prioritization(self, values) -> Trajectory:
        return self.append(act.SetPrioritization(values))

    def branch(self, option: Callable[[Any], int], continue_, *trajectories: Trajectory) -> Trajectory:
        return self.append(act.Branch(option, continue_, trajectories))

    def clone(self, n, *trajectories: Trajectory) -> Trajectory:
        return self.append(act.Clone(n, trajectories))

    def synchronize(self, wait: bool = True, mon_all: bool = False) -> Trajectory:
        return self.append(act.Synchronize(wait, mon_all))

    def rollback(self, amount: int, times: float = 1, check: Callable[[Any], bool] | None = None) -> Trajectory:
        return self.append(act.Rollback(amount, times, check))

    def send(self, signals, delay=0) -> Trajectory:
        return self.append(act.Send(signals, delay))

    def wait(self, signals) -> Trajectory:
        return self.append(act.Wait(signals))

    def renege_in(self, t, out: Trajectory | None = None, keep_seized: bool = False) -> Trajectory:
        return self.append(act.RenegeIn(t, out, keep_seized))

    def renege_if(self, signal, out: Trajectory | None = None, keep_seized: bool = False) -> Trajectory:
        return self.append(act.RenegeIf(signal, out, keep_seized))

    def renege_abort(self) -> Trajectory:
        return self.append(act.RenegeAbort())

    def leave(self, probability, out: Trajectory | None = None, keep_seized: bool = False) -> Trajectory:
        return self.append(act.Leave(probability, out, keep_seized))

    def activate(self, source) -> Trajectory:
        return self.append(act.Activate(source))

    def deactivate(self, source) -> Trajectory:
        return self.append(act.Deactivate(source))

    def set_source(self, source, distribution) -> Trajectory:
        return self.append(act.SetSource(source, distribution))

    def set_trajectory(self, source, trajectory: Trajectory) -> Trajectory:
        return self.append(act.SetTrajectory(source, trajectory))

    def set_capacity(self, resource, value, mod: str | None = None) -> Trajectory:
        return self.append(act.SetCapacity(resource, value, mod))

    def set_queue_size(self, resource, value, mod: str | None = None) -> Trajectory:
        return self.append(act.SetQueueSize(resource, value, mod))

    def log(self, message, level: str | int = "INFO") -> Trajectory:
        return self.append(act.Log(message, level))

    def batch(self, n: int, timeout: float = 0, permanent: bool = False, name: str = "", rule=None) -> Trajectory:
        return self.append(act.BatchActivity(n, timeout, permanent, name, rule))

    def separate(self) -> Trajectory:
        return self.append(act.Separate())
