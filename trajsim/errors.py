"""Exception types raised by the simulation kernel.

Programmer mistakes (bad names, invalid times) surface as exceptions.
Rejection and reneging are modeled outcomes recorded by the monitor, not
errors; ``ResourceSaturatedError`` is raised internally by a resource and
converted into a rejection by the seize activity that triggered it.
"""

from __future__ import annotations


class SimulationError(Exception):
    """Base class for all kernel errors."""


class InvalidTimeError(SimulationError, ValueError):
    """An event was scheduled strictly before the current simulation time."""

    def __init__(self, time: float, now: float):
        super().__init__(f"cannot schedule at t={time} before current time t={now}")
        self.time = time
        self.now = now


class UnknownResourceOrSignalError(SimulationError, KeyError):
    """A trajectory or run-control call referenced a name never registered."""

    def __init__(self, kind: str, name: str):
        super().__init__(f"unknown {kind} '{name}'")
        self.kind = kind
        self.name = name

    def __str__(self) -> str:
        return self.args[0]


class ResourceSaturatedError(SimulationError, RuntimeError):
    """A seize found neither free servers nor room in the queue."""

    def __init__(self, resource: str, amount: float):
        super().__init__(f"resource '{resource}' saturated, cannot seize {amount}")
        self.resource = resource
        self.amount = amount


class ReleaseError(SimulationError, RuntimeError):
    """An arrival tried to release more units than it holds."""
