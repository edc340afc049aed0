"""Server capacity plus a bounded priority queue.

Arrivals seize units of a Resource and release them later. When no server
unit is free the arrival waits in the queue, ordered by descending priority
and first-come-first-served among equal priorities. When the queue is full the
seize fails with ``ResourceSaturatedError``, which the seize activity turns into
a rejection.

Example::

    sim = Simulation("bank")
    sim.add_resource("teller", capacity=2, queue_size=10)

    customer = (
        Trajectory("customer")
        .seize("teller")
        .timeout(lambda arrival: sim.rng.expovariate(1 / 5))
        .release("teller")
    )
"""

from __future__ import annotations

import bisect
import logging
import math
from dataclasses import dataclass
from itertools import count
from typing import TYPE_CHECKING

from trajsim.errors import ReleaseError, ResourceSaturatedError

if TYPE_CHECKING:
    from trajsim.components.arrival import Arrival
    from trajsim.core.simulation import Simulation

logger = logging.getLogger(__name__)

PREEMPT_ORDERS = ("fifo", "lifo")


@dataclass(frozen=True)
class ResourceStats:
    """Frozen snapshot of resource statistics.

    Attributes:
        name: Resource name.
        capacity: Current server capacity.
        queue_size: Current queue capacity.
        server_count: Units currently seized.
        queue_count: Arrivals currently waiting.
        seizes: Successful seizes (immediate or after waiting).
        releases: Release operations.
        rejections: Seizes rejected for lack of queue room.
        preemptions: Holders evicted by higher-priority arrivals.
        peak_queue: Longest queue observed.
        total_wait_time: Simulated time spent queued, summed over waiters.
    """

    name: str
    capacity: float
    queue_size: float
    server_count: float
    queue_count: int
    seizes: int
    releases: int
    rejections: int
    preemptions: int
    peak_queue: int
    total_wait_time: float


@dataclass
class _Hold:
    """Internal: units held by one arrival."""

    amount: float
    request_time: float
    grant_time: float
    order: int


@dataclass
class _Waiter:
    """Internal: a queued seize request."""

    key: tuple
    arrival: Arrival
    amount: float
    request_time: float
    enqueue_time: float

    def __lt__(self, other: _Waiter) -> bool:
        return self.key < other.key


class Resource:
    """Contended server capacity with a bounded priority queue.

    Invariants: ``server_count <= capacity`` except for holders grandfathered
    by a capacity reduction, and ``queue_count <= queue_size`` except for
    preempted arrivals re-queued on a non-strict preemptive resource.

    Args:
        name: Identifier used in monitor records.
        capacity: Number of server units (``math.inf`` for unlimited).
        queue_size: Number of queue slots (``0`` for no queue).
        preemptive: Whether higher-priority arrivals may evict holders.
        preempt_order: Which eligible holder is evicted first, "fifo" or "lifo".
        queue_size_strict: Whether preempted arrivals respect ``queue_size``.
        mon: Whether to write resource monitor rows.

    Raises:
        ValueError: If capacity or queue_size is negative, or preempt_order
            is unknown.
    """

    def __init__(
        self,
        name: str,
        capacity: float = 1,
        queue_size: float = math.inf,
        *,
        preemptive: bool = False,
        preempt_order: str = "fifo",
        queue_size_strict: bool = False,
        mon: bool = True,
    ) -> None:
        if capacity < 0:
            raise ValueError(f"capacity must be >= 0, got {capacity}")
        if queue_size < 0:
            raise ValueError(f"queue_size must be >= 0, got {queue_size}")
        if preempt_order not in PREEMPT_ORDERS:
            raise ValueError(f"preempt_order must be one of {PREEMPT_ORDERS}, got {preempt_order!r}")

        self.name = name
        self.preemptive = preemptive
        self.preempt_order = preempt_order
        self.queue_size_strict = queue_size_strict
        self.mon = mon
        self._initial_capacity = capacity
        self._initial_queue_size = queue_size
        self._sim: Simulation | None = None
        self._init_state()

    def _init_state(self) -> None:
        self._capacity = self._initial_capacity
        self._queue_size = self._initial_queue_size
        self._server_count = 0
        self._holders: dict[Arrival, _Hold] = {}
        self._queue: list[_Waiter] = []
        self._order = count()

        self._seizes = 0
        self._releases = 0
        self._rejections = 0
        self._preemptions = 0
        self._peak_queue = 0
        self._total_wait_time = 0.0

    def attach(self, sim: Simulation) -> None:
        self._sim = sim

    def reset(self) -> None:
        """Restore initial capacity and drop all holders and waiters."""
        self._init_state()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def capacity(self) -> float:
        return self._capacity

    @property
    def queue_size(self) -> float:
        return self._queue_size

    @property
    def server_count(self) -> float:
        """Units currently seized."""
        return self._server_count

    @property
    def queue_count(self) -> int:
        """Arrivals currently waiting."""
        return len(self._queue)

    @property
    def queued(self) -> list[Arrival]:
        """Waiting arrivals in service order."""
        return [waiter.arrival for waiter in self._queue]

    def holds(self, arrival: Arrival) -> float:
        """Units held by ``arrival`` (0 if none)."""
        hold = self._holders.get(arrival)
        return hold.amount if hold is not None else 0

    @property
    def stats(self) -> ResourceStats:
        return ResourceStats(
            name=self.name,
            capacity=self._capacity,
            queue_size=self._queue_size,
            server_count=self._server_count,
            queue_count=len(self._queue),
            seizes=self._seizes,
            releases=self._releases,
            rejections=self._rejections,
            preemptions=self._preemptions,
            peak_queue=self._peak_queue,
            total_wait_time=self._total_wait_time,
        )

    # ------------------------------------------------------------------
    # Seize / release
    # ------------------------------------------------------------------

    def seize(self, arrival: Arrival, amount: float = 1) -> bool:
        """Request ``amount`` units for ``arrival``.

        Returns:
            True if granted immediately, False if the arrival was queued.

        Raises:
            ValueError: If amount is not positive.
            ResourceSaturatedError: If there is no server room and no
                queue room.
        """
        if amount <= 0:
            raise ValueError(f"amount must be > 0, got {amount}")
        now = self._now()

        if self._server_count + amount <= self._capacity:
            self._grant(arrival, amount, request_time=now)
            logger.debug(
                "[%s] Immediate seize(%s) by %s, server=%s",
                self.name, amount, arrival.name, self._server_count,
            )
            self._record()
            return True

        if self.preemptive and self._try_preempt(arrival, amount):
            self._grant(arrival, amount, request_time=now)
            self._record()
            return True

        if len(self._queue) < self._queue_size:
            self._enqueue(arrival, amount, request_time=now, preempted=False)
            logger.debug(
                "[%s] Queued seize(%s) by %s, queue=%d",
                self.name, amount, arrival.name, len(self._queue),
            )
            self._record()
            return False

        self._rejections += 1
        logger.debug("[%s] Rejected seize(%s) by %s", self.name, amount, arrival.name)
        raise ResourceSaturatedError(self.name, amount)

    def release(self, arrival: Arrival, amount: float | None = None) -> None:
        """Return units held by ``arrival`` and serve the queue.

        Args:
            amount: Units to release; ``None`` releases everything held.

        Raises:
            ReleaseError: If the arrival holds fewer units than requested.
        """
        hold = self._holders.get(arrival)
        if hold is None:
            raise ReleaseError(f"'{arrival.name}' holds no units of resource '{self.name}'")
        if amount is None:
            amount = hold.amount
        if amount <= 0 or amount > hold.amount:
            raise ReleaseError(
                f"'{arrival.name}' cannot release {amount} of resource '{self.name}' "
                f"(holds {hold.amount})"
            )

        now = self._now()
        hold.amount -= amount
        self._server_count -= amount
        self._releases += 1
        if hold.amount <= 0:
            del self._holders[arrival]
            arrival._note_released(self)
            if self._sim is not None and arrival.mon >= 1:
                self._sim.monitor.record_release(
                    arrival.name, hold.request_time, now, now - hold.grant_time, self.name
                )

        logger.debug(
            "[%s] %s released %s, server=%s",
            self.name, arrival.name, amount, self._server_count,
        )
        self._serve_queue()
        self._record()

    def remove_waiter(self, arrival: Arrival) -> bool:
        """Withdraw a queued arrival (reneging). Returns whether it was queued."""
        for i, waiter in enumerate(self._queue):
            if waiter.arrival is arrival:
                del self._queue[i]
                self._record()
                return True
        return False

    # ------------------------------------------------------------------
    # Runtime mutation
    # ------------------------------------------------------------------

    def set_capacity(self, value: float) -> None:
        """Change server capacity.

        Current holders keep their units when capacity shrinks; no new grants
        happen until usage drops below the new capacity.
        """
        if value < 0:
            raise ValueError(f"capacity must be >= 0, got {value}")
        logger.debug("[%s] capacity %s -> %s", self.name, self._capacity, value)
        self._capacity = value
        self._serve_queue()
        self._record()

    def set_queue_size(self, value: float) -> None:
        """Change queue capacity, rejecting the lowest-priority tail if it overflows."""
        if value < 0:
            raise ValueError(f"queue_size must be >= 0, got {value}")
        logger.debug("[%s] queue_size %s -> %s", self.name, self._queue_size, value)
        self._queue_size = value
        dropped = []
        while len(self._queue) > value:
            dropped.append(self._queue.pop())
        self._record()
        for waiter in dropped:
            self._rejections += 1
            waiter.arrival.reject()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _grant(self, arrival: Arrival, amount: float, request_time: float) -> None:
        now = self._now()
        self._server_count += amount
        self._seizes += 1
        hold = self._holders.get(arrival)
        if hold is None:
            self._holders[arrival] = _Hold(amount, request_time, now, next(self._order))
            arrival._note_held(self)
        else:
            hold.amount += amount

    def _enqueue(self, arrival: Arrival, amount: float, request_time: float, preempted: bool) -> None:
        # Preempted arrivals go ahead of regular waiters with the same priority.
        key = (-arrival.priority, 0 if preempted else 1, next(self._order))
        bisect.insort(self._queue, _Waiter(key, arrival, amount, request_time, self._now()))
        if len(self._queue) > self._peak_queue:
            self._peak_queue = len(self._queue)

    def _serve_queue(self) -> None:
        """Grant queued requests head-first while capacity allows."""
        while self._queue:
            waiter = self._queue[0]
            if self._server_count + waiter.amount > self._capacity:
                break
            self._queue.pop(0)
            self._total_wait_time += self._now() - waiter.enqueue_time
            self._grant(waiter.arrival, waiter.amount, waiter.request_time)
            logger.debug(
                "[%s] Granted queued seize(%s) to %s, server=%s",
                self.name, waiter.amount, waiter.arrival.name, self._server_count,
            )
            waiter.arrival._on_granted(self)

    def _try_preempt(self, arrival: Arrival, amount: float) -> bool:
        """Evict lower-priority holders to make room for ``arrival``."""
        from trajsim.components.arrival import ArrivalState

        eligible = [
            (hold, holder)
            for holder, hold in self._holders.items()
            if holder is not arrival
            and holder.preemptible < arrival.priority
            and holder.state is ArrivalState.SUSPENDED_TIMEOUT
        ]
        if self.preempt_order == "fifo":
            eligible.sort(key=lambda item: (item[1].priority, item[0].order))
        else:
            eligible.sort(key=lambda item: (item[1].priority, -item[0].order))

        free = self._capacity - self._server_count
        victims = []
        for hold, holder in eligible:
            if free >= amount:
                break
            victims.append((hold, holder))
            free += hold.amount
        if free < amount:
            return False

        for hold, holder in victims:
            self._preempt(holder, hold)
        return True

    def _preempt(self, victim: Arrival, hold: _Hold) -> None:
        del self._holders[victim]
        self._server_count -= hold.amount
        self._preemptions += 1
        victim._note_released(self)
        victim._on_preempted(self)
        logger.debug("[%s] %s preempted, server=%s", self.name, victim.name, self._server_count)

        if self.queue_size_strict and len(self._queue) >= self._queue_size:
            self._rejections += 1
            victim.reject()
            return
        self._enqueue(victim, hold.amount, hold.request_time, preempted=True)

    def _now(self) -> float:
        return self._sim.now if self._sim is not None else 0.0

    def _record(self) -> None:
        if self._sim is not None and self.mon:
            self._sim.monitor.record_resource(
                self.name,
                self._sim.now,
                self._server_count,
                len(self._queue),
                self._capacity,
                self._queue_size,
            )

    def __repr__(self) -> str:
        return (
            f"Resource('{self.name}', capacity={self._capacity}, queue_size={self._queue_size}, "
            f"server={self._server_count}, queue={len(self._queue)})"
        )
