"""Events: the units of work popped by the simulation loop.

Each event names the entity it resumes (an arrival, a source, the signal
bus, a manager) and the simulated time at which it fires. Events are never
mutated after creation; cancelling one only marks it void so the loop skips
it when it reaches the top of the heap.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Optional, Union

if TYPE_CHECKING:
    from trajsim.core.entity import Entity

logger = logging.getLogger(__name__)


class EventKind(enum.Enum):
    """What an event does when it fires."""

    ARRIVAL_RESUME = "arrival_resume"
    ARRIVAL_TIMER = "arrival_timer"
    SOURCE_FIRE = "source_fire"
    SIGNAL_FIRE = "signal_fire"
    MANAGER_ACTION = "manager_action"
    CALLBACK = "callback"


EventCallback = Callable[["Event"], Union[list["Event"], "Event", None]]
"""Signature for plain-function events scheduled through ``Simulation.schedule``."""


class Event:
    """A pending action at a point in simulated time.

    Sorting is done by the EventHeap on ``(time, insertion sequence)`` so
    that simultaneous events fire in the order they were scheduled.

    Attributes:
        time: When this event fires.
        kind: What the event does; see EventKind.
        target: Entity whose ``handle_event`` receives the event.
        description: Human-readable label shown by ``Simulation.peek``.
        payload: Optional data for the target (e.g. signal names).
    """

    __slots__ = ("_cancelled", "callback", "description", "kind", "payload", "target", "time")

    def __init__(
        self,
        time: float,
        kind: EventKind,
        target: Optional["Entity"] = None,
        description: str | None = None,
        *,
        callback: EventCallback | None = None,
        payload: Any = None,
    ):
        if target is None and callback is None:
            raise ValueError(f"Event '{kind.value}' must have a target or a callback.")

        self.time = float(time)
        self.kind = kind
        self.target = target
        self.callback = callback
        self.payload = payload
        self.description = description or self._default_description()
        self._cancelled = False

    def _default_description(self) -> str:
        if self.target is not None:
            return f"{self.kind.value}:{self.target.name}"
        return self.kind.value

    @property
    def cancelled(self) -> bool:
        """Whether this event has been voided."""
        return self._cancelled

    def cancel(self) -> None:
        """Void the event. The loop discards it on pop. Idempotent."""
        self._cancelled = True

    def invoke(self) -> list["Event"]:
        """Run the event and return follow-up events to schedule."""
        if self.callback is not None:
            result = self.callback(self)
        else:
            result = self.target.handle_event(self)
        return self._normalize_return(result)

    @staticmethod
    def _normalize_return(value: Any) -> list["Event"]:
        if value is None:
            return []
        if isinstance(value, list):
            return value
        if isinstance(value, Event):
            return [value]
        logger.warning("Event handler returned unsupported type %s; ignoring.", type(value))
        return []

    def __repr__(self) -> str:
        state = " cancelled" if self._cancelled else ""
        return f"Event({self.time!r}, {self.description!r}{state})"
