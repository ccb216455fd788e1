from __future__ import annotations

import itertools
import threading


from typing import Generic
from typing import TypeVar

_T = TypeVar('_T')


class QuerySequencer(Generic[_T]):
    """ Keeps the result of the newest query when queries overlap.

    Moving a time cursor fires a query per position. The responses may
    arrive in any order, but an older response must never replace a newer
    one. Each query takes a ticket before it is sent and hands its result
    in with that ticket::

        ticket = sequencer.begin()
        result = list(store.active_at(when))

        if sequencer.accept(ticket, result):
            render(sequencer.result)

    Queries abandoned mid-flight simply never hand in their ticket.

    """

    def __init__(self) -> None:
        self.counter = itertools.count(1)
        self.lock = threading.Lock()
        self.latest_ticket = 0
        self.accepted_ticket = 0
        self.result: _T | None = None

    def begin(self) -> int:
        with self.lock:
            self.latest_ticket = next(self.counter)
            return self.latest_ticket

    def is_stale(self, ticket: int) -> bool:
        """ True if a newer query has already delivered its result. """
        return ticket <= self.accepted_ticket

    def accept(self, ticket: int, result: _T) -> bool:
        """ Stores the result if it is newer than the stored one. Returns
        False if the result was discarded.

        """
        with self.lock:
            if self.is_stale(ticket):
                return False

            self.accepted_ticket = ticket
            self.result = result
            return True

    @property
    def is_pending(self) -> bool:
        """ True if the latest query has not delivered its result yet. """
        return self.accepted_ticket < self.latest_ticket
