"""Batching arrivals into a single unit."""

import pandas as pd

from trajsim import Simulation, Trajectory


def _rows(*times):
    return pd.DataFrame({"time": list(times)})


class TestBatch:
    """batch(n) collects arrivals and moves them as one."""

    def test_full_batch_seizes_once(self):
        sim = Simulation()
        sim.add_resource("bus", capacity=1)
        traj = Trajectory().batch(3).seize("bus").timeout(5).release("bus")
        sim.add_dataframe("p", traj, _rows(0, 1, 2))
        sim.run()

        arrivals = sim.get_mon_arrivals()
        assert arrivals["end_time"].tolist() == [7, 7, 7]
        assert arrivals["finished"].all()
        assert arrivals["activity_time"].tolist() == [5, 5, 5]
        assert sim.get_resource("bus").stats.seizes == 1

    def test_incomplete_batch_waits(self):
        sim = Simulation()
        sim.add_dataframe("p", Trajectory().batch(3).timeout(1), _rows(0, 1))
        sim.run(until=100)
        assert sim.get_mon_arrivals().empty

    def test_timeout_releases_partial_batch(self):
        sim = Simulation()
        sim.add_dataframe("p", Trajectory().batch(3, timeout=4).timeout(1), _rows(0, 1))
        sim.run()
        assert sim.get_mon_arrivals()["end_time"].tolist() == [5, 5]

    def test_consecutive_batches(self):
        sim = Simulation()
        sim.add_dataframe("p", Trajectory().batch(2).timeout(1), _rows(0, 1, 2, 3))
        sim.run()
        assert sim.get_mon_arrivals()["end_time"].tolist() == [2, 2, 4, 4]

    def test_separate_resumes_members(self):
        sim = Simulation()
        sim.add_resource("van", capacity=1)
        traj = (
            Trajectory()
            .batch(2)
            .seize("van")
            .timeout(5)
            .release("van")
            .separate()
            .timeout(lambda a: a.get_attribute("walk"))
        )
        sim.add_dataframe("p", traj, pd.DataFrame({"time": [0, 1], "walk": [1, 3]}))
        sim.run()

        arrivals = sim.get_mon_arrivals().set_index("name")
        assert arrivals.loc["p0", "end_time"] == 7
        assert arrivals.loc["p1", "end_time"] == 9
        assert arrivals.loc["p1", "activity_time"] == 8

    def test_permanent_batch_ignores_separate(self):
        sim = Simulation()
        traj = Trajectory().batch(2, permanent=True).separate().timeout(lambda a: 2)
        sim.add_dataframe("p", traj, _rows(0, 0))
        sim.run()
        assert sim.get_mon_arrivals()["end_time"].tolist() == [2, 2]

    def test_rule_skips_batch(self):
        sim = Simulation()
        traj = Trajectory().batch(2, rule=lambda a: a.get_attribute("group") == 1).timeout(1)
        sim.add_dataframe("p", traj, pd.DataFrame({"time": [0, 0, 0], "group": [1, 2, 1]}))
        sim.run()

        ends = sim.get_mon_arrivals().set_index("name")["end_time"]
        assert ends["p1"] == 1
        assert ends["p0"] == ends["p2"] == 1

    def test_shared_name_joins_trajectories(self):
        sim = Simulation()
        sim.add_dataframe("a", Trajectory().batch(2, name="ferry").timeout(2), _rows(0))
        sim.add_dataframe("b", Trajectory().batch(2, name="ferry").timeout(9), _rows(1))
        sim.run()
        assert sim.get_mon_arrivals()["end_time"].tolist() == [3, 3]

    def test_member_renege_before_release(self):
        sim = Simulation()
        traj = Trajectory().renege_in(2).batch(3, timeout=5).timeout(1)
        sim.add_dataframe("p", traj, _rows(0, 1))
        sim.run()

        arrivals = sim.get_mon_arrivals().set_index("name")
        assert arrivals.loc["p0", "outcome"] == "reneged"
        assert arrivals.loc["p0", "end_time"] == 2
        assert arrivals.loc["p1", "outcome"] == "reneged"
        assert arrivals.loc["p1", "end_time"] == 3
        assert not sim._batches

    def test_member_renege_after_release_takes_batch(self):
        sim = Simulation()
        sim.add_resource("r", capacity=1)
        traj = Trajectory().renege_in(2).batch(2).seize("r").timeout(5).release("r")
        sim.add_dataframe("p", traj, _rows(0, 1))
        summary = sim.run()

        arrivals = sim.get_mon_arrivals()
        assert arrivals["outcome"].tolist() == ["reneged", "reneged"]
        assert arrivals["end_time"].tolist() == [2, 2]
        assert summary.arrivals_reneged == 2
        assert sim.get_server_count("r") == 0
