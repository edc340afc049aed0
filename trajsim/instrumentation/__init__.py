"""Monitoring and run summaries."""

from trajsim.instrumentation.monitor import Monitor
from trajsim.instrumentation.summary import SimulationSummary

__all__ = [
    "Monitor",
    "SimulationSummary",
]
