"""Reneging: timers, out paths, keep_seized and probabilistic leave."""

import itertools

import pandas as pd
import pytest

from trajsim import Simulation, Trajectory


def _n_arrivals(n):
    counter = itertools.count(1)
    return lambda: 1 if next(counter) < n else -1


@pytest.fixture
def busy_sim():
    """One server held by ``holder0`` from 0 to 10."""
    sim = Simulation("busy")
    sim.add_resource("r", capacity=1)
    sim.add_dataframe("holder", Trajectory().seize("r").timeout(10).release("r"), pd.DataFrame({"time": [0]}))
    return sim


class TestRenegeIn:
    """Timer-based abandonment."""

    def test_abandons_queue(self, busy_sim):
        traj = Trajectory().renege_in(3).seize("r").timeout(1).release("r")
        busy_sim.add_dataframe("c", traj, pd.DataFrame({"time": [1]}))
        busy_sim.run()

        row = busy_sim.get_mon_arrivals().set_index("name").loc["c0"]
        assert row["outcome"] == "reneged"
        assert row["end_time"] == 4
        assert busy_sim.get_resource("r").queue_count == 0

    def test_out_path_runs_before_leaving(self, busy_sim):
        out = Trajectory().set_attribute("gave_up", 1).timeout(1)
        traj = Trajectory().renege_in(3, out=out).seize("r").timeout(1).release("r")
        busy_sim.add_dataframe("c", traj, pd.DataFrame({"time": [1]}))
        busy_sim.run()

        row = busy_sim.get_mon_arrivals().set_index("name").loc["c0"]
        assert row["outcome"] == "reneged"
        assert not row["finished"]
        assert row["end_time"] == 5
        assert busy_sim.get_mon_attributes()["time"].tolist() == [4]

    def test_seized_units_are_released(self):
        sim = Simulation()
        sim.add_resource("r", capacity=1)
        first = Trajectory().renege_in(2).seize("r").timeout(10).release("r")
        second = Trajectory().seize("r").timeout(1).release("r")
        sim.add_dataframe("a", first, pd.DataFrame({"time": [0]}))
        sim.add_dataframe("b", second, pd.DataFrame({"time": [1]}))
        sim.run()

        ends = sim.get_mon_arrivals().set_index("name")["end_time"]
        assert ends["a0"] == 2
        assert ends["b0"] == 3

    def test_keep_seized_holds_through_out_path(self):
        sim = Simulation()
        sim.add_resource("r", capacity=1)
        out = Trajectory().timeout(1).release("r")
        first = Trajectory().renege_in(2, out=out, keep_seized=True).seize("r").timeout(10).release("r")
        second = Trajectory().seize("r").timeout(1).release("r")
        sim.add_dataframe("a", first, pd.DataFrame({"time": [0]}))
        sim.add_dataframe("b", second, pd.DataFrame({"time": [1]}))
        sim.run()

        ends = sim.get_mon_arrivals().set_index("name")["end_time"]
        assert ends["a0"] == 3
        assert ends["b0"] == 4

    def test_timer_replaced_by_later_renege_in(self, busy_sim):
        traj = Trajectory().renege_in(2).renege_in(20).seize("r").timeout(1).release("r")
        busy_sim.add_dataframe("c", traj, pd.DataFrame({"time": [1]}))
        busy_sim.run()
        assert busy_sim.get_mon_arrivals().set_index("name").loc["c0", "end_time"] == 11


class TestLeave:
    """leave(p) is a Bernoulli trial on the simulation RNG."""

    def test_always_leaves(self):
        sim = Simulation(seed=3)
        sim.add_generator("a", Trajectory().leave(1.0).timeout(1), _n_arrivals(1000))
        summary = sim.run()
        assert summary.arrivals_reneged == 1000
        assert summary.arrivals_finished == 0

    def test_never_leaves(self):
        sim = Simulation(seed=3)
        sim.add_generator("a", Trajectory().leave(0.0).timeout(1), _n_arrivals(1000))
        summary = sim.run()
        assert summary.arrivals_reneged == 0
        assert summary.arrivals_finished == 1000

    def test_leaves_in_proportion(self):
        sim = Simulation(seed=11)
        sim.add_generator("a", Trajectory().leave(0.3), _n_arrivals(1000))
        summary = sim.run()
        assert 250 <= summary.arrivals_reneged <= 350

    def test_leave_out_path(self):
        sim = Simulation()
        sim.add_generator("a", Trajectory().leave(1, out=Trajectory().timeout(2)).timeout(50), lambda: -1)
        sim.run()
        row = sim.get_mon_arrivals().iloc[0]
        assert row["outcome"] == "reneged"
        assert row["end_time"] == 2
