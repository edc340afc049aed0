"""Trajectories and the activities they are built from."""

from trajsim.trajectory.activities import Activity, Selected
from trajsim.trajectory.trajectory import Trajectory

__all__ = [
    "Activity",
    "Selected",
    "Trajectory",
]
