"""Cloning and synchronization."""

import pandas as pd

from trajsim import Simulation, Trajectory


def _one():
    return pd.DataFrame({"time": [0]})


class TestClone:
    """clone(n) dispatches parallel copies; synchronize joins them."""

    def test_clones_follow_their_paths(self):
        sim = Simulation()
        traj = Trajectory().clone(
            3,
            Trajectory().timeout(1),
            Trajectory().timeout(2),
            Trajectory().timeout(3),
        )
        sim.add_dataframe("x", traj, _one())
        sim.run()

        arrivals = sim.get_mon_arrivals()
        assert arrivals["name"].tolist() == ["x0", "x0", "x0"]
        assert arrivals["end_time"].tolist() == [1, 2, 3]

    def test_synchronize_wait_keeps_last(self):
        sim = Simulation()
        traj = (
            Trajectory()
            .clone(3, Trajectory().timeout(1), Trajectory().timeout(2), Trajectory().timeout(3))
            .synchronize(wait=True)
            .timeout(1)
        )
        sim.add_dataframe("x", traj, _one())
        summary = sim.run()

        arrivals = sim.get_mon_arrivals()
        assert arrivals["end_time"].tolist() == [4]
        assert arrivals["activity_time"].tolist() == [4]
        assert summary.arrivals_started == 1

    def test_synchronize_first_continues(self):
        sim = Simulation()
        traj = (
            Trajectory()
            .clone(2, Trajectory().timeout(5), Trajectory().timeout(1))
            .synchronize(wait=False)
            .timeout(1)
        )
        sim.add_dataframe("x", traj, _one())
        sim.run()
        assert sim.get_mon_arrivals()["end_time"].tolist() == [2]

    def test_mon_all_records_removed_clones(self):
        sim = Simulation()
        traj = (
            Trajectory()
            .clone(2, Trajectory().timeout(1), Trajectory().timeout(2))
            .synchronize(wait=True, mon_all=True)
        )
        sim.add_dataframe("x", traj, _one())
        sim.run()
        assert sim.get_mon_arrivals()["end_time"].tolist() == [1, 2]

    def test_clones_copy_attributes(self):
        sim = Simulation()
        traj = (
            Trajectory()
            .set_attribute("n", 1)
            .clone(2, Trajectory().set_attribute("n", 5, mod="+"), Trajectory().set_attribute("n", 10, mod="*"))
        )
        sim.add_dataframe("x", traj, _one())
        sim.run()
        assert sim.get_mon_attributes()["value"].tolist() == [1, 6, 10]

    def test_fewer_paths_than_clones(self):
        sim = Simulation()
        traj = Trajectory().clone(3, Trajectory().timeout(2)).timeout(1)
        sim.add_dataframe("x", traj, _one())
        sim.run()
        assert sorted(sim.get_mon_arrivals()["end_time"].tolist()) == [1, 1, 3]
