"""trajsim: process-oriented discrete-event simulation.

Arrivals walk immutable trajectories of activities, contend for resources
with bounded priority queues, wait on signals and are batched, cloned or
rolled back. A monitor records every state change as pandas DataFrames.

The package is silent by default; see ``trajsim.logging_config`` for the
``enable_*`` helpers.
"""

import logging

logging.getLogger("trajsim").addHandler(logging.NullHandler())

from trajsim.core import Clock, Entity, Event, EventHeap, EventKind, Simulation
from trajsim.components import (
    Arrival,
    ArrivalState,
    Batch,
    DataSource,
    Generator,
    Manager,
    Resource,
    ResourceStats,
    Schedule,
    SignalBus,
    Source,
)
from trajsim.errors import (
    InvalidTimeError,
    ReleaseError,
    ResourceSaturatedError,
    SimulationError,
    UnknownResourceOrSignalError,
)
from trajsim.instrumentation import Monitor, SimulationSummary
from trajsim.logging_config import (
    configure_from_env,
    disable_logging,
    enable_console_logging,
    enable_file_logging,
    enable_json_file_logging,
    enable_json_logging,
    enable_timed_file_logging,
    set_level,
    set_module_level,
)
from trajsim.replication import collect, replicate
from trajsim.trajectory import Activity, Selected, Trajectory

__version__ = "0.1.0"

__all__ = [
    # Core
    "Clock",
    "Entity",
    "Event",
    "EventHeap",
    "EventKind",
    "Simulation",
    # Components
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
    # Trajectories
    "Activity",
    "Selected",
    "Trajectory",
    # Instrumentation
    "Monitor",
    "SimulationSummary",
    # Replication
    "collect",
    "replicate",
    # Errors
    "InvalidTimeError",
    "ReleaseError",
    "ResourceSaturatedError",
    "SimulationError",
    "UnknownResourceOrSignalError",
    # Logging
    "configure_from_env",
    "disable_logging",
    "enable_console_logging",
    "enable_file_logging",
    "enable_json_file_logging",
    "enable_json_logging",
    "enable_timed_file_logging",
    "set_level",
    "set_module_level",
]
