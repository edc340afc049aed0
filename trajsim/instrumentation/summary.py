"""Simulation summary generated after a run completes.

SimulationSummary gives a structured overview of one run: how far the clock
advanced, how many events were handled, what became of the arrivals and a
statistics snapshot per resource. It is returned by Simulation.run().
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from trajsim.components.resource import ResourceStats


@dataclass
class SimulationSummary:
    """Auto-generated summary of a simulation run."""
    name: str
    now: float
    events_processed: int
    events_cancelled: int
    wall_clock_seconds: float
    arrivals_started: int = 0
    arrivals_finished: int = 0
    arrivals_rejected: int = 0
    arrivals_reneged: int = 0
    resources: dict[str, ResourceStats] = field(default_factory=dict)

    @property
    def arrivals_in_system(self) -> int:
        return self.arrivals_started - self.arrivals_finished - self.arrivals_rejected - self.arrivals_reneged

    def __str__(self) -> str:
        lines = [
            f"Simulation Summary ({self.name})",
            f"  Time: {self.now:.2f} (sim) / {self.wall_clock_seconds:.3f}s (wall)",
            f"  Events processed: {self.events_processed} ({self.events_cancelled} cancelled)",
            f"  Arrivals: {self.arrivals_started} started, {self.arrivals_finished} finished, "
            f"{self.arrivals_rejected} rejected, {self.arrivals_reneged} reneged",
        ]
        if self.resources:
            lines.append("  Resources:")
            for name, rs in self.resources.items():
                lines.append(
                    f"    {name}: server={rs.server_count}/{rs.capacity} queue={rs.queue_count}/{rs.queue_size}"
                    f" | seizes={rs.seizes}, rejections={rs.rejections}, preemptions={rs.preemptions},"
                    f" peak_queue={rs.peak_queue}"
                )
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "now": self.now,
            "events_processed": self.events_processed,
            "events_cancelled": self.events_cancelled,
            "wall_clock_seconds": self.wall_clock_seconds,
            "arrivals": {
                "started": self.arrivals_started,
                "finished": self.arrivals_finished,
                "rejected": self.arrivals_rejected,
                "reneged": self.arrivals_reneged,
            },
            "resources": {name: asdict(rs) for name, rs in self.resources.items()},
        }
