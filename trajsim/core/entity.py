"""Base class for everything the event loop can resume.

Arrivals, sources, managers and the signal bus are entities: they receive
events via handle_event() and schedule follow-ups through their simulation.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from trajsim.core.event import Event, EventKind

if TYPE_CHECKING:
    from trajsim.core.simulation import Simulation

logger = logging.getLogger(__name__)


class Entity(ABC):
    """Abstract base class for schedulable simulation entities.

    The owning Simulation is injected on registration; entities must not be
    used outside a simulation.

    Attributes:
        name: Identifier used in monitor records and log lines.
    """

    def __init__(self, name: str):
        self.name = name
        self._sim: Simulation | None = None

    def attach(self, sim: Simulation) -> None:
        """Inject the owning simulation. Called automatically on registration."""
        self._sim = sim
        logger.debug("[%s] Attached to simulation '%s'", self.name, sim.name)

    @property
    def sim(self) -> Simulation:
        if self._sim is None:
            raise RuntimeError(f"Entity {self.name} is not attached to a simulation.")
        return self._sim

    @property
    def now(self) -> float:
        """Current simulation time."""
        return self.sim.now

    def schedule(
        self,
        delay: float,
        kind: EventKind,
        description: str | None = None,
        payload: Any = None,
    ) -> Event:
        """Create and push an event targeting this entity ``delay`` from now."""
        event = Event(self.now + delay, kind, self, description, payload=payload)
        self.sim.push(event)
        return event

    @abstractmethod
    def handle_event(self, event: Event) -> list[Event] | Event | None:
        """Process an event popped by the loop and return follow-up events."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"
