"""Named broadcast signals.

``send`` schedules a broadcast; when it fires, every arrival waiting on (or
set to renege on) any of the named signals is handled at that same instant,
in the order the subscriptions were made. Subscriptions are one-shot.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from itertools import count
from typing import TYPE_CHECKING

from trajsim.core.entity import Entity
from trajsim.core.event import Event, EventKind
from trajsim.errors import UnknownResourceOrSignalError

if TYPE_CHECKING:
    from trajsim.components.arrival import Arrival

logger = logging.getLogger(__name__)


class Subscription:
    """A pending interest of one arrival in one or more signals."""

    __slots__ = ("_bus", "active", "arrival", "callback", "names", "seq")

    def __init__(
        self,
        bus: SignalBus,
        seq: int,
        arrival: Arrival,
        names: tuple[str, ...],
        callback: Callable[[], None],
    ):
        self._bus = bus
        self.seq = seq
        self.arrival = arrival
        self.names = names
        self.callback = callback
        self.active = True

    def cancel(self) -> None:
        """Deactivate and detach from every signal it still listens to."""
        if not self.active:
            return
        self.active = False
        self._bus._discard(self)


class SignalBus(Entity):
    """Registry and dispatcher for the signals of one simulation."""

    def __init__(self, name: str = "signals"):
        super().__init__(name)
        self._known: set[str] = set()
        self._subscribers: dict[str, list[Subscription]] = {}
        self._seq = count()

    @property
    def known(self) -> frozenset[str]:
        return frozenset(self._known)

    def register(self, *names: str) -> None:
        self._known.update(names)

    def reset(self) -> None:
        self._subscribers.clear()
        self._seq = count()

    def subscribe(self, arrival: Arrival, names: Iterable[str], callback: Callable[[], None]) -> Subscription:
        names = tuple(names)
        for name in names:
            if name not in self._known:
                raise UnknownResourceOrSignalError("signal", name)
        sub = Subscription(self, next(self._seq), arrival, names, callback)
        for name in names:
            self._subscribers.setdefault(name, []).append(sub)
        return sub

    def subscriber_count(self, name: str | None = None) -> int:
        """Stored subscriptions for ``name``, or for every signal."""
        if name is not None:
            return len(self._subscribers.get(name, ()))
        return sum(len(subs) for subs in self._subscribers.values())

    def _discard(self, sub: Subscription) -> None:
        for name in sub.names:
            subs = self._subscribers.get(name)
            if subs and sub in subs:
                subs.remove(sub)
                if not subs:
                    del self._subscribers[name]

    def send(self, names: Iterable[str], delay: float = 0.0) -> Event:
        """Schedule a broadcast of ``names`` at ``now + delay``."""
        names = tuple(names)
        self.register(*names)
        logger.debug("Signal %s scheduled for t=%s", names, self.now + delay)
        return self.schedule(delay, EventKind.SIGNAL_FIRE, f"signal:{','.join(names)}", payload=names)

    def handle_event(self, event: Event) -> None:
        self.broadcast(event.payload)

    def broadcast(self, names: Iterable[str]) -> int:
        """Handle every active subscriber of ``names`` now. Returns how many."""
        names = tuple(names)
        pending: dict[int, Subscription] = {}
        for name in names:
            for sub in self._subscribers.pop(name, []):
                if sub.active:
                    pending[sub.seq] = sub

        handled = 0
        for seq in sorted(pending):
            sub = pending[seq]
            # An earlier handler (e.g. a renege) may have cancelled this one.
            if not sub.active:
                continue
            sub.cancel()
            sub.callback()
            handled += 1
        logger.debug("Signal %s handled %d subscriber(s) at t=%s", names, handled, self.now)
        return handled
