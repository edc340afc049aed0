"""Independent replications of one model.

Each replication is a separate Simulation built by the caller, so clocks,
resources, random streams and monitors are never shared. With more than one
worker the replications run on a thread pool.

Example::

    def build(i):
        sim = Simulation(f"rep{i}", seed=i)
        ...
        return sim

    sims = replicate(build, n=10, until=480)
    waits = collect(sims, lambda sim: sim.get_mon_arrivals())
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

import pandas as pd

from trajsim.core.simulation import Simulation

logger = logging.getLogger(__name__)


def replicate(
    build: Callable[[int], Simulation],
    n: int,
    until: float,
    workers: int = 1,
) -> list[Simulation]:
    """Build ``n`` simulations with ``build(i)`` and run each to ``until``.

    Returns the simulations in replication order. An exception raised by any
    replication propagates.
    """
    if n < 1:
        raise ValueError(f"n must be >= 1, got {n}")
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")

    sims = [build(i) for i in range(n)]
    logger.info("Running %d replications until t=%s on %d worker(s)", n, until, workers)
    if workers == 1:
        for sim in sims:
            sim.run(until)
    else:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            for future in [pool.submit(sim.run, until) for sim in sims]:
                future.result()
    return sims


def collect(sims: list[Simulation], extract: Callable[[Simulation], pd.DataFrame]) -> pd.DataFrame:
    """Concatenate ``extract(sim)`` over replications with a ``replication`` column."""
    frames = []
    for i, sim in enumerate(sims):
        frame = extract(sim).copy()
        frame["replication"] = i
        frames.append(frame)
    return pd.concat(frames, ignore_index=True)
