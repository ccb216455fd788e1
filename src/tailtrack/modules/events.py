""" Changes to allocations are published by the
:class:`tailtrack.db.store.AllocationStore` once they are committed.

Each context owns its own change feed. Consumers subscribe with a
predicate and receive the changes matching it::

    from tailtrack.modules.events import for_station

    subscription = store.changes.subscribe(for_station('DFW'))

    ...

    for change in subscription.drain():
        refresh(change.station_ids)

    subscription.close()

Instead of buffering, a callback may be given, it is called for each
matching change in the order the changes were published.
"""
from __future__ import annotations

import logging
import threading

from collections import deque


from typing import overload
from typing import Literal
from typing import NamedTuple
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from collections.abc import Callable
    from collections.abc import Iterable
    from collections.abc import Iterator
    from typing_extensions import ParamSpec
    from typing_extensions import TypeAlias
    from uuid import UUID

    from tailtrack.db.models import Allocation, Period

    _P = ParamSpec('_P')

    ChangeKind: TypeAlias = Literal['created', 'updated', 'deleted']
    Predicate: TypeAlias = Callable[['ChangeEvent'], bool]


log = logging.getLogger('tailtrack')


class Event(list['Callable[_P, object]']):
    """Event subscription. By http://stackoverflow.com/a/2022629

    A list of callable objects. Calling an instance of this will cause a
    call to each item in the list in ascending order by index.

    """
    # NOTE: This is only used for binding the correct `ParamSpec` for callback
    #       protocols, otherwise we have to define a pseudo-type, that doesn't
    #       look like an instance of `Event`...
    @overload
    def __init__(self, f: type[Callable[_P, object]]) -> None: ...
    @overload
    def __init__(self) -> None: ...

    def __init__(self, f: object = None) -> None:
        return

    def __call__(self, *args: _P.args, **kwargs: _P.kwargs) -> None:
        for f in self:
            f(*args, **kwargs)


class ChangeEvent(NamedTuple):
    """ A committed change to an allocation.

    For updates, the aircraft ids, station ids and periods contain both the
    old and the new values (old first), so consumers can find out what was
    affected before and after the change.

    """

    kind: ChangeKind
    allocation_id: UUID
    aircraft_ids: tuple[str, ...]
    station_ids: tuple[str, ...]
    periods: tuple[Period, ...]

    @classmethod
    def from_allocation(
        cls,
        kind: ChangeKind,
        allocation: Allocation,
        previous: ChangeEvent | None = None
    ) -> ChangeEvent:

        aircraft_ids = (allocation.aircraft_id, )
        station_ids = (allocation.station_id, )
        periods = (allocation.period, )

        if previous is not None:
            aircraft_ids = (*previous.aircraft_ids, *aircraft_ids)
            station_ids = (*previous.station_ids, *station_ids)
            periods = (*previous.periods, *periods)

        return cls(
            kind=kind,
            allocation_id=allocation.id,
            aircraft_ids=tuple(dict.fromkeys(aircraft_ids)),
            station_ids=tuple(dict.fromkeys(station_ids)),
            periods=tuple(dict.fromkeys(periods))
        )


def any_change(change: ChangeEvent) -> bool:
    return True


def for_aircraft(aircraft_id: str) -> Predicate:
    """ Matches the changes to allocations of the given aircraft, including
    allocations which were corrected to belong to another aircraft.

    """
    def predicate(change: ChangeEvent) -> bool:
        return aircraft_id in change.aircraft_ids
    return predicate


def for_station(station_id: str) -> Predicate:
    """ Matches the changes to allocations at the given station, including
    allocations which were moved away from it.

    """
    def predicate(change: ChangeEvent) -> bool:
        return station_id in change.station_ids
    return predicate


class Subscription:
    """ A subscription to a change feed. Matching changes are buffered
    until drained, unless a callback consumes them.

    """

    def __init__(
        self,
        feed: ChangeFeed,
        predicate: Predicate,
        callback: Callable[[ChangeEvent], object] | None = None
    ):
        self.feed = feed
        self.predicate = predicate
        self.on_change: Event[ChangeEvent] = Event()
        self.buffer: deque[ChangeEvent] = deque()
        self.lock = threading.Lock()
        self.closed = False

        if callback is not None:
            self.on_change.append(callback)

    def __iter__(self) -> Iterator[ChangeEvent]:
        return iter(self.drain())

    def deliver(self, change: ChangeEvent) -> None:
        if self.closed or not self.predicate(change):
            return

        if self.on_change:
            self.on_change(change)
        else:
            with self.lock:
                self.buffer.append(change)

    def drain(self) -> list[ChangeEvent]:
        """ Returns the buffered changes and empties the buffer. """
        with self.lock:
            changes = list(self.buffer)
            self.buffer.clear()

        return changes

    def close(self) -> None:
        self.closed = True
        self.feed.unsubscribe(self)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class ChangeFeed:
    """ Publishes committed allocation changes to its subscriptions. """

    def __init__(self) -> None:
        self.subscriptions: list[Subscription] = []
        self.lock = threading.Lock()

    def subscribe(
        self,
        predicate: Predicate | None = None,
        callback: Callable[[ChangeEvent], object] | None = None
    ) -> Subscription:

        subscription = Subscription(self, predicate or any_change, callback)

        with self.lock:
            self.subscriptions.append(subscription)

        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self.lock:
            if subscription in self.subscriptions:
                self.subscriptions.remove(subscription)

    def publish(self, changes: Iterable[ChangeEvent]) -> None:
        """ Delivers the changes to every matching subscription. The changes
        are committed already, a failing subscriber is logged and does not
        keep the others from being notified.

        """
        with self.lock:
            subscriptions = list(self.subscriptions)

        for change in changes:
            log.debug(
                'Publishing %s of allocation %s',
                change.kind, change.allocation_id
            )
            for subscription in subscriptions:
                try:
                    subscription.deliver(change)
                except Exception:
                    log.exception(
                        'Subscriber failed on %s of allocation %s',
                        change.kind, change.allocation_id
                    )
