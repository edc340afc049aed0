"""Simulation components: arrivals, resources, sources, signals and managers."""

from trajsim.components.arrival import Arrival, ArrivalState, Batch
from trajsim.components.manager import Manager, Schedule
from trajsim.components.resource import Resource, ResourceStats
from trajsim.components.signals import SignalBus
from trajsim.components.source import DataSource, Generator, Source

__all__ = [
    "Arrival",
    "ArrivalState",
    "Batch",
    "DataSource",
    "Generator",
    "Manager",
    "Resource",
    "ResourceStats",
    "Schedule",
    "SignalBus",
    "Source",
]
