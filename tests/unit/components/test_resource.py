"""Unit tests for Resource seize/release, queueing and runtime changes."""

import math

import pandas as pd
import pytest

from trajsim import Resource, Simulation, Trajectory


def _arrivals_at(times, **columns):
    return pd.DataFrame({"time": times, **columns})


def _by_name(sim):
    return sim.get_mon_arrivals().set_index("name")


class TestResourceCreation:
    """Tests for Resource construction and validation."""

    def test_defaults(self):
        r = Resource("teller")
        assert r.capacity == 1
        assert r.queue_size == math.inf
        assert r.server_count == 0
        assert r.queue_count == 0

    def test_negative_capacity_raises(self):
        with pytest.raises(ValueError, match="capacity must be >= 0"):
            Resource("bad", capacity=-1)

    def test_negative_queue_size_raises(self):
        with pytest.raises(ValueError, match="queue_size must be >= 0"):
            Resource("bad", queue_size=-1)

    def test_unknown_preempt_order_raises(self):
        with pytest.raises(ValueError, match="preempt_order"):
            Resource("bad", preempt_order="random")

    def test_repr(self):
        assert "capacity=2" in repr(Resource("cpu", capacity=2))


class TestSeizeAndQueue:
    """Queueing discipline and rejection."""

    def test_fifo_among_equal_priority(self, sim):
        sim.add_resource("r", capacity=1)
        traj = Trajectory().seize("r").timeout(2).release("r")
        sim.add_dataframe("c", traj, _arrivals_at([0, 0, 0]))
        sim.run()

        ends = _by_name(sim)["end_time"]
        assert list(ends[["c0", "c1", "c2"]]) == [2, 4, 6]

    def test_higher_priority_served_first(self, sim):
        sim.add_resource("r", capacity=1)
        traj = Trajectory().seize("r").timeout(2).release("r")
        sim.add_dataframe("low", traj, _arrivals_at([0, 0]))
        sim.add_dataframe("high", traj, _arrivals_at([1]), priority=5)
        sim.run()

        ends = _by_name(sim)["end_time"]
        assert ends["low0"] == 2
        assert ends["high0"] == 4
        assert ends["low1"] == 6

    def test_no_queue_rejects(self, sim):
        sim.add_resource("r", capacity=1, queue_size=0)
        traj = Trajectory().seize("r").timeout(5).release("r")
        sim.add_dataframe("c", traj, _arrivals_at([0, 1]))
        summary = sim.run()

        arrivals = _by_name(sim)
        assert arrivals.loc["c0", "finished"]
        assert not arrivals.loc["c1", "finished"]
        assert arrivals.loc["c1", "outcome"] == "rejected"
        assert arrivals.loc["c1", "end_time"] == 1
        assert summary.resources["r"].rejections == 1

    def test_reject_path_finishes_normally(self, sim):
        sim.add_resource("r", capacity=1, queue_size=0)
        balk = Trajectory().set_attribute("balked", 1)
        traj = Trajectory().seize("r", reject=balk).timeout(5).release("r")
        sim.add_dataframe("c", traj, _arrivals_at([0, 1]))
        sim.run()

        arrivals = _by_name(sim)
        assert arrivals.loc["c1", "finished"]
        assert arrivals.loc["c1", "end_time"] == 1

    def test_post_seize_path(self, sim):
        sim.add_resource("r", capacity=1)
        after = Trajectory().timeout(2).release("r")
        traj = Trajectory().seize("r", continue_=(False, False), post_seize=after).timeout(100)
        sim.add_dataframe("c", traj, _arrivals_at([0, 0]))
        sim.run()

        assert list(_by_name(sim)["end_time"]) == [2, 4]

    def test_amounts(self, sim):
        sim.add_resource("r", capacity=3)
        big = Trajectory().seize("r", 2).timeout(4).release("r", 2)
        sim.add_dataframe("big", big, _arrivals_at([0, 0]))
        sim.run(until=1)

        assert sim.get_server_count("r") == 2
        assert sim.get_queue_count("r") == 1

    def test_capacity_invariant_holds_in_monitor(self, sim):
        sim.add_resource("r", capacity=2, queue_size=3)
        traj = Trajectory().seize("r").timeout(lambda a: 3 + sim.rng.random()).release("r")
        sim.add_generator("c", traj, lambda: sim.rng.expovariate(1.0))
        sim.run(until=200)

        resources = sim.get_mon_resources()
        assert (resources["server"] <= resources["capacity"]).all()
        assert (resources["queue"] <= resources["queue_size"]).all()

    def test_release_more_than_held_raises(self, sim):
        from trajsim import ReleaseError

        sim.add_resource("r", capacity=2)
        sim.add_generator("c", Trajectory().seize("r").release("r", 2), lambda: -1)
        with pytest.raises(ReleaseError, match="cannot release 2"):
            sim.run()

    def test_exit_releases_held_units(self, sim, caplog):
        sim.add_resource("r", capacity=1)
        sim.add_dataframe("c", Trajectory().seize("r").timeout(1), _arrivals_at([0, 0]))
        with caplog.at_level("WARNING", logger="trajsim"):
            sim.run()

        assert list(_by_name(sim)["end_time"]) == [1, 2]
        assert "released at exit" in caplog.text


class TestRuntimeChanges:
    """set_capacity and set_queue_size."""

    def test_capacity_increase_serves_queue(self, sim):
        sim.add_resource("r", capacity=1)
        traj = Trajectory().seize("r").timeout(10).release("r")
        sim.add_dataframe("c", traj, _arrivals_at([0, 0]))
        sim.schedule(3, lambda event: sim.set_capacity("r", 2))
        sim.run()

        assert _by_name(sim).loc["c1", "end_time"] == 13

    def test_capacity_decrease_grandfathers_holders(self, sim):
        sim.add_resource("r", capacity=2)
        traj = Trajectory().seize("r").timeout(10).release("r")
        sim.add_dataframe("c", traj, _arrivals_at([0, 0, 0]))
        sim.schedule(1, lambda event: sim.set_capacity("r", 1))
        sim.run(until=2)
        assert sim.get_server_count("r") == 2
        sim.run()

        ends = _by_name(sim)["end_time"]
        assert list(ends[["c0", "c1", "c2"]]) == [10, 10, 20]

    def test_queue_shrink_rejects_tail(self, sim):
        sim.add_resource("r", capacity=1)
        traj = Trajectory().seize("r").timeout(10).release("r")
        sim.add_dataframe("c", traj, _arrivals_at([0, 0, 0, 0]))
        sim.schedule(1, lambda event: sim.set_queue_size("r", 1))
        sim.run()

        arrivals = _by_name(sim)
        assert arrivals.loc["c2", "outcome"] == "rejected"
        assert arrivals.loc["c3", "outcome"] == "rejected"
        assert arrivals.loc["c3", "end_time"] == 1
        assert arrivals.loc["c1", "end_time"] == 20

    def test_set_capacity_activity(self, sim):
        sim.add_resource("r", capacity=1)
        sim.add_generator("c", Trajectory().set_capacity("r", 2, mod="+"), lambda: -1)
        sim.run()
        assert sim.get_capacity("r") == 3


class TestStats:
    """ResourceStats snapshot."""

    def test_stats(self, sim):
        sim.add_resource("r", capacity=1)
        traj = Trajectory().seize("r").timeout(2).release("r")
        sim.add_dataframe("c", traj, _arrivals_at([0, 0, 0]))
        sim.run()

        stats = sim.get_resource("r").stats
        assert stats.seizes == 3
        assert stats.releases == 3
        assert stats.peak_queue == 2
        assert stats.total_wait_time == 2 + 4

    def test_per_resource_rows(self, sim):
        sim.add_resource("r", capacity=1)
        traj = Trajectory().seize("r").timeout(2).release("r")
        sim.add_dataframe("c", traj, _arrivals_at([0, 0]))
        sim.run()

        rows = sim.get_mon_arrivals(per_resource=True)
        assert list(rows["resource"]) == ["r", "r"]
        assert list(rows["start_time"]) == [0, 0]
        assert list(rows["end_time"]) == [2, 4]
        assert list(rows["activity_time"]) == [2, 2]
