"""Unit tests for EventHeap ordering and lazy cancellation."""

from trajsim.core.event import Event, EventKind
from trajsim.core.event_heap import EventHeap


def _noop(event):
    return None


def _event(time, label):
    return Event(time, EventKind.CALLBACK, description=label, callback=_noop)


class TestOrdering:
    """Events pop by time, then by push order."""

    def test_pops_in_time_order(self):
        heap = EventHeap([_event(3, "c"), _event(1, "a"), _event(2, "b")])
        assert [heap.pop().description for _ in range(3)] == ["a", "b", "c"]

    def test_ties_pop_in_insertion_order(self):
        heap = EventHeap()
        for label in "wxyz":
            heap.push(_event(5, label))
        assert [heap.pop().description for _ in range(4)] == list("wxyz")

    def test_push_list(self):
        heap = EventHeap()
        heap.push([_event(1, "a"), _event(0, "b")])
        assert heap.size() == 2
        assert heap.peek().description == "b"

    def test_sequence_is_per_heap(self):
        first, second = EventHeap(), EventHeap()
        first.push(_event(1, "a"))
        second.push(_event(1, "b"))
        assert first._heap[0][1] == second._heap[0][1] == 0


class TestCancellation:
    """Cancelled events are skipped lazily."""

    def test_discard_cancelled_counts(self):
        a, b = _event(1, "a"), _event(2, "b")
        heap = EventHeap([a, b])
        a.cancel()
        a.cancel()
        heap.discard_cancelled()
        assert heap.cancelled_discarded == 1
        assert heap.pop() is b

    def test_upcoming_skips_cancelled(self):
        events = [_event(t, str(t)) for t in range(5)]
        heap = EventHeap(events)
        events[1].cancel()
        assert [e.description for e in heap.upcoming(3)] == ["0", "2", "3"]
        assert heap.size() == 5

    def test_clear(self):
        heap = EventHeap([_event(1, "a")])
        heap.clear()
        assert not heap.has_events()


class TestEvent:
    """Tests for Event construction and invocation."""

    def test_requires_target_or_callback(self):
        import pytest

        with pytest.raises(ValueError, match="must have a target or a callback"):
            Event(1, EventKind.CALLBACK)

    def test_invoke_normalizes_return(self):
        follow_up = _event(2, "next")
        event = Event(1, EventKind.CALLBACK, callback=lambda e: follow_up)
        assert event.invoke() == [follow_up]
        assert _event(1, "x").invoke() == []
