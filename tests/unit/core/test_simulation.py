"""Unit tests for the Simulation run loop and run control."""

import math

import pytest

from trajsim import InvalidTimeError, Simulation, Trajectory, UnknownResourceOrSignalError


class TestRunHorizon:
    """run(until) processes events strictly before the horizon."""

    def test_clock_freezes_at_until(self, sim):
        sim.add_generator("a", Trajectory().timeout(1), lambda: 2)
        sim.run(until=7)
        assert sim.now == 7

    def test_event_at_until_stays_pending(self, sim):
        fired = []
        sim.schedule(5, lambda event: fired.append(event.time))
        sim.run(until=5)
        assert fired == []
        assert [at for at, _ in sim.peek()] == [5.0]

        sim.run(until=6)
        assert fired == [5.0]

    def test_empty_queue_still_advances_to_until(self, sim):
        sim.schedule(3, lambda event: None)
        sim.run(until=10)
        assert sim.now == 10

    def test_run_on_empty_model_advances_clock(self, sim):
        summary = sim.run(until=4)
        assert sim.now == 4
        assert summary.now == 4

    def test_run_without_horizon_drains(self, sim):
        sim.add_generator("a", Trajectory().timeout(1), lambda: -1)
        summary = sim.run()
        assert sim.now == 1
        assert summary.arrivals_finished == 1

    def test_resumable(self, sim):
        sim.add_generator("a", Trajectory().timeout(1), lambda: 5)
        sim.run(until=7)
        sim.run(until=12)
        assert sim.get_n_generated("a") == 3

    def test_until_before_now_raises(self, sim):
        sim.run(until=5)
        with pytest.raises(InvalidTimeError):
            sim.run(until=4)


class TestRunControl:
    """Tests for step, peek, schedule and reset."""

    def test_schedule_in_the_past_raises(self, sim):
        sim.run(until=5)
        with pytest.raises(InvalidTimeError):
            sim.schedule(4, lambda event: None)

    def test_step(self, sim):
        times = []
        sim.schedule(1, lambda event: times.append(sim.now))
        sim.schedule(2, lambda event: times.append(sim.now))
        assert sim.step()
        assert times == [1]
        assert sim.step()
        assert not sim.step()

    def test_peek_returns_time_and_description(self, sim):
        sim.schedule(4, lambda event: None, "wake up")
        sim.schedule(6, lambda event: None, "stand up")
        assert sim.peek(2) == [(4.0, "wake up"), (6.0, "stand up")]
        assert sim.peek() == [(4.0, "wake up")]

    def test_callback_error_propagates(self, sim):
        def boom(event):
            raise RuntimeError("boom")

        sim.schedule(1, boom)
        with pytest.raises(RuntimeError, match="boom"):
            sim.run()

    def test_reset_restores_initial_state(self, sim):
        sim.add_resource("r", capacity=1)
        sim.add_global("count", 0)
        traj = Trajectory().set_global("count", 1, mod="+").seize("r").timeout(3).release("r")
        sim.add_generator("a", traj, lambda: 1)

        sim.run(until=10)
        first = sim.get_mon_arrivals()
        sim.reset()
        assert sim.now == 0
        assert sim.get_global("count") == 0
        assert sim.get_server_count("r") == 0
        assert sim.get_mon_arrivals().empty

        sim.run(until=10)
        assert sim.get_mon_arrivals().equals(first)


class TestValidation:
    """Unknown names are reported when the run starts."""

    def test_unknown_resource(self, sim):
        sim.add_generator("a", Trajectory().seize("ghost"), lambda: 1)
        with pytest.raises(UnknownResourceOrSignalError, match="unknown resource 'ghost'"):
            sim.run(until=1)

    def test_unknown_resource_in_branch(self, sim):
        inner = Trajectory().seize("ghost")
        sim.add_generator("a", Trajectory().branch(lambda a: 1, True, inner), lambda: 1)
        with pytest.raises(UnknownResourceOrSignalError):
            sim.run(until=1)

    def test_unknown_source(self, sim):
        sim.add_generator("a", Trajectory().activate("nobody"), lambda: 1)
        with pytest.raises(UnknownResourceOrSignalError, match="source"):
            sim.run(until=1)

    def test_wait_needs_a_known_signal(self, sim):
        sim.add_generator("a", Trajectory().wait("go"), lambda: 1)
        with pytest.raises(UnknownResourceOrSignalError, match="signal 'go'"):
            sim.run(until=1)

    def test_signal_sent_by_any_trajectory_is_known(self, sim):
        sim.add_generator("waiter", Trajectory().wait("go"), lambda: -1)
        sim.add_generator("sender", Trajectory().timeout(1).send("go"), lambda: -1)
        sim.run()
        assert sim.get_mon_arrivals()["finished"].all()

    def test_set_trajectory_validates(self, sim):
        sim.add_generator("a", Trajectory().timeout(1), lambda: 1)
        with pytest.raises(UnknownResourceOrSignalError):
            sim.set_trajectory("a", Trajectory().release("ghost"))

    def test_unknown_names_at_run_control(self, sim):
        with pytest.raises(UnknownResourceOrSignalError):
            sim.get_capacity("ghost")
        with pytest.raises(UnknownResourceOrSignalError):
            sim.activate("ghost")
        with pytest.raises(KeyError):
            sim.get_source("ghost")


class TestRegistration:
    """Tests for the add_* methods."""

    def test_duplicate_resource_raises(self, sim):
        sim.add_resource("r")
        with pytest.raises(ValueError, match="already exists"):
            sim.add_resource("r")

    def test_getters_and_setters(self, sim):
        sim.add_resource("r", capacity=2, queue_size=5)
        assert sim.get_capacity("r") == 2
        assert sim.get_queue_size("r") == 5
        sim.set_capacity("r", 4)
        sim.set_queue_size("r", math.inf)
        assert sim.get_capacity("r") == 4
        assert sim.get_queue_size("r") == math.inf

    def test_summary(self, sim):
        sim.add_resource("r")
        sim.add_generator("a", Trajectory().seize("r").timeout(1).release("r"), lambda: 2)
        summary = sim.run(until=10)

        assert summary.arrivals_started == 5
        assert summary.arrivals_finished == 5
        assert summary.resources["r"].seizes == 5
        assert summary.to_dict()["arrivals"]["finished"] == 5
        assert "Simulation Summary (test)" in str(summary)

    def test_simulations_are_independent(self):
        first, second = Simulation("a"), Simulation("b")
        for sim in (first, second):
            sim.add_generator("x", Trajectory().timeout(1), lambda: 1)
        first.run(until=10)
        assert second.now == 0
        assert second.get_n_generated("x") == 0
