"""Core simulation engine: clock, events, the event heap and the run loop."""

from trajsim.core.clock import Clock
from trajsim.core.event import Event, EventKind
from trajsim.core.event_heap import EventHeap
from trajsim.core.entity import Entity
from trajsim.core.simulation import Simulation

__all__ = [
    "Clock",
    "Entity",
    "Event",
    "EventHeap",
    "EventKind",
    "Simulation",
]
