"""Unit tests for Clock."""

import pytest

from trajsim import InvalidTimeError
from trajsim.core.clock import Clock


class TestClock:
    def test_starts_at_zero(self):
        assert Clock().now == 0.0

    def test_update_and_reset(self):
        clock = Clock(start=2)
        clock.update(5)
        assert clock.now == 5.0
        clock.reset()
        assert clock.now == 2.0

    def test_backwards_raises(self):
        clock = Clock()
        clock.update(3)
        with pytest.raises(InvalidTimeError, match="before current time"):
            clock.update(1)

    def test_invalid_time_is_value_error(self):
        with pytest.raises(ValueError):
            Clock(start=1).update(0)
