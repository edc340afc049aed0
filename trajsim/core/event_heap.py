import heapq
from itertools import count
from typing import Union

from trajsim.core.event import Event


class EventHeap:
    def __init__(self, events: list[Event] | None = None):
        """Time-ordered queue of pending events.

        Entries are stored as ``(time, sequence, event)`` tuples. The sequence
        comes from a counter owned by this heap, so two simulations never share
        ordering state and simultaneous events pop in the order they were
        pushed. Cancelled events stay on the heap until they reach the top.
        """
        self._heap: list[tuple[float, int, Event]] = []
        self._sequence = count()
        self.cancelled_discarded = 0
        if events:
            self.push(events)

    def push(self, events: Union[Event, list[Event]]) -> None:
        """Push an Event or a list of Events."""
        if isinstance(events, list):
            for event in events:
                heapq.heappush(self._heap, (event.time, next(self._sequence), event))
        else:
            heapq.heappush(self._heap, (events.time, next(self._sequence), events))

    def pop(self) -> Event:
        return heapq.heappop(self._heap)[2]

    def peek(self) -> Event:
        return self._heap[0][2]

    def discard_cancelled(self) -> None:
        """Drop cancelled events sitting at the top of the heap."""
        while self._heap and self._heap[0][2].cancelled:
            heapq.heappop(self._heap)
            self.cancelled_discarded += 1

    def upcoming(self, n: int = 1) -> list[Event]:
        """The next ``n`` live events in firing order, without removing them."""
        live = [entry for entry in self._heap if not entry[2].cancelled]
        return [entry[2] for entry in heapq.nsmallest(n, live)]

    def has_events(self) -> bool:
        return bool(self._heap)

    def size(self) -> int:
        return len(self._heap)

    def clear(self) -> None:
        self._heap.clear()
        self._sequence = count()
        self.cancelled_discarded = 0
