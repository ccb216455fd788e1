from __future__ import annotations

from datetime import datetime
from pytz import utc
from uuid import uuid4 as new_uuid

from tailtrack.db.models import Allocation, Period
from tailtrack.modules.events import ChangeEvent
from tailtrack.modules.events import ChangeFeed
from tailtrack.modules.events import Event
from tailtrack.modules.events import for_aircraft
from tailtrack.modules.events import for_station


def change(
    aircraft_id: str = 'N123AB',
    station_id: str = 'DFW',
    kind: str = 'created'
) -> ChangeEvent:
    return ChangeEvent(
        kind=kind,  # type: ignore[arg-type]
        allocation_id=new_uuid(),
        aircraft_ids=(aircraft_id, ),
        station_ids=(station_id, ),
        periods=(Period(datetime(2026, 1, 22, 9, tzinfo=utc)), )
    )


def test_event_calls_in_order() -> None:
    calls = []

    event: Event[int] = Event()
    event.append(lambda n: calls.append(('first', n)))
    event.append(lambda n: calls.append(('second', n)))
    event(1)

    assert calls == [('first', 1), ('second', 1)]


def test_change_from_updated_allocation() -> None:
    allocation = Allocation(
        id=new_uuid(),
        aircraft_id='N123AB',
        station_id='DFW',
        period_start=datetime(2026, 1, 22, 9, tzinfo=utc),
        period_end=datetime(2026, 1, 22, 17, tzinfo=utc)
    )

    previous = ChangeEvent.from_allocation('updated', allocation)

    allocation.station_id = 'CLT'
    allocation.period_end = None

    updated = ChangeEvent.from_allocation('updated', allocation, previous)

    assert updated.kind == 'updated'
    assert updated.allocation_id == allocation.id
    assert updated.aircraft_ids == ('N123AB', )
    assert updated.station_ids == ('DFW', 'CLT')
    assert updated.periods == (
        Period(
            datetime(2026, 1, 22, 9, tzinfo=utc),
            datetime(2026, 1, 22, 17, tzinfo=utc)
        ),
        Period(datetime(2026, 1, 22, 9, tzinfo=utc)),
    )


def test_subscription_buffers_matching_changes() -> None:
    feed = ChangeFeed()

    everything = feed.subscribe()
    dfw = feed.subscribe(for_station('DFW'))
    tail = feed.subscribe(for_aircraft('N456CD'))

    first = change()
    second = change(aircraft_id='N456CD', station_id='ORD')
    feed.publish([first, second])

    assert everything.drain() == [first, second]
    assert everything.drain() == []
    assert list(dfw) == [first]
    assert list(tail) == [second]


def test_subscription_callback() -> None:
    feed = ChangeFeed()
    seen: list[ChangeEvent] = []

    subscription = feed.subscribe(for_station('CLT'), callback=seen.append)
    feed.publish([change(station_id='DFW'), change(station_id='CLT')])

    assert [c.station_ids for c in seen] == [('CLT', )]

    # changes handed to the callback are not buffered
    assert subscription.drain() == []


def test_closed_subscriptions_receive_nothing() -> None:
    feed = ChangeFeed()

    with feed.subscribe() as subscription:
        feed.publish([change()])
        assert len(subscription.drain()) == 1

    assert feed.subscriptions == []

    feed.publish([change()])
    assert subscription.drain() == []


def test_change_to_another_aircraft() -> None:
    allocation = Allocation(
        id=new_uuid(),
        aircraft_id='N1',
        station_id='DFW',
        period_start=datetime(2026, 1, 22, 9, tzinfo=utc)
    )

    previous = ChangeEvent.from_allocation('updated', allocation)
    allocation.aircraft_id = 'N2'

    updated = ChangeEvent.from_allocation('updated', allocation, previous)

    assert updated.aircraft_ids == ('N1', 'N2')
    assert updated.station_ids == ('DFW', )

    # both tails learn about it, the history of either has changed
    assert for_aircraft('N1')(updated)
    assert for_aircraft('N2')(updated)
    assert not for_aircraft('N3')(updated)


def test_failing_subscriber_does_not_stop_the_others() -> None:
    feed = ChangeFeed()

    def fail(change: ChangeEvent) -> None:
        raise RuntimeError('subscriber is broken')

    feed.subscribe(callback=fail)
    buffered = feed.subscribe()

    first, second = change(), change(station_id='ORD')
    feed.publish([first, second])

    assert buffered.drain() == [first, second]
