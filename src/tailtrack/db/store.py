from __future__ import annotations

import logging

from contextlib import contextmanager
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from uuid import uuid4 as new_uuid

from tailtrack.context.core import ContextServicesMixin
from tailtrack.db.models import ORMBase, Allocation
from tailtrack.db.models.types.uuid_type import as_uuid
from tailtrack.db.queries import Queries
from tailtrack.modules import errors
from tailtrack.modules import summary
from tailtrack.modules import utils
from tailtrack.modules.events import ChangeEvent


from typing import Any
from typing import NoReturn
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from collections.abc import Iterable
    from collections.abc import Iterator
    from collections.abc import Sequence
    from datetime import datetime
    from sqlalchemy.orm import Query
    from typing_extensions import Self
    from uuid import UUID

    from tailtrack.context.core import Context


log = logging.getLogger('tailtrack')

#: the session info key under which uncommitted changes are kept
STAGED_CHANGES = 'tailtrack.staged_changes'

#: exclusion violation, serialization failure and deadlock, all of them
#: mean that another transaction got to the same aircraft first
CONFLICT_CODES = frozenset(('23P01', '40001', '40P01'))

#: the fields which may be passed to update
UPDATABLE_FIELDS = frozenset((
    'aircraft_id',
    'station_id',
    'period_start',
    'period_end',
    'carrier_id',
    'airline_code',
    'inbound_flight_number',
    'outbound_flight_number',
    'data',
))


def _optional_text(value: str | None) -> str | None:
    if value is None:
        return None

    return str(value).strip() or None


class AllocationStore(ContextServicesMixin):
    """ The store is responsible for talking to the database of the given
    context to record where aircraft sit. It is the main part of the API.

    Writes are added to the session of the current thread and flushed
    right away, so conflicts surface as early as possible. They become
    visible to others with :meth:`commit`, which also publishes them on
    the change feed of the context.

    A write which is rejected by the database (because a concurrent write
    got to the same aircraft first, or because the database failed) rolls
    back the whole session.

    """

    def __init__(
        self,
        context: Context,
        timezone: str = 'UTC',
        allocation_cls: type[Allocation] = Allocation
    ):
        """ Initializes a new store.

        :context:
            The :class:`tailtrack.context.core.Context` this store should
            operate on. Acquire a context by using
            :func:`tailtrack.context.registry.Registry.register_context`.

        :timezone:
            Dates passed to the store that are not timezone-aware are
            assumed to be of this timezone. Dates read from the store are
            always in UTC.

        """

        assert isinstance(timezone, str)

        self.context = context
        self.queries = Queries(context)
        self.timezone = timezone
        self.allocation_cls = allocation_cls

    def clone(self) -> Self:
        """ Clones the store. The result will be a new store using the same
        context, timezone and allocation class.

        """

        return self.__class__(
            self.context,
            self.timezone,
            self.allocation_cls
        )

    def setup_database(self) -> None:
        """ Creates the tables, constraints and indices required. This needs
        to be called once per database. Multiple invocations won't hurt but
        they are unnecessary.

        """
        ORMBase.metadata.create_all(self.session.bind)

    def standardize(self, when: datetime | str, field: str = 'when') -> datetime:
        """ Returns the given date or ISO-8601 string as UTC datetime. """
        return utils.parse_moment(when, self.timezone, field)

    def managed_allocations(self) -> Query[Allocation]:
        """ All allocations recorded in the database. """
        return self.session.query(self.allocation_cls)

    def extinguish_managed_records(self) -> None:
        """ WARNING:
        Completely removes all allocations. No changes are published.

        """
        self.managed_allocations().delete('fetch')

    def allocation_by_id(self, id: UUID | str) -> Allocation:
        uuid = as_uuid(id)

        if uuid is None:
            raise errors.AllocationNotFound(id)

        allocation = self.session.get(self.allocation_cls, uuid)

        if allocation is None:
            raise errors.AllocationNotFound(id)

        return allocation

    def _filters(
        self,
        station_id: str | None,
        aircraft_id: str | None,
        carrier_id: str | None
    ) -> dict[str, str | None]:
        if station_id is not None:
            station_id = utils.normalize_code(station_id, 'station_id')

        if aircraft_id is not None:
            aircraft_id = utils.normalize_code(aircraft_id, 'aircraft_id')

        return {
            'station_id': station_id,
            'aircraft_id': aircraft_id,
            'carrier_id': _optional_text(carrier_id),
        }

    def active_at(
        self,
        when: datetime | str | None = None,
        station_id: str | None = None,
        aircraft_id: str | None = None,
        carrier_id: str | None = None
    ) -> Query[Allocation]:
        """ Returns the allocations active at the given instant (now if
        no instant is given), optionally limited to a station, an aircraft
        or a carrier.

        Every count of aircraft at a station is based on this query.

        """
        moment = self.clock() if when is None else self.standardize(when)

        query = self.managed_allocations()
        query = self.queries.active_at(query, moment)
        query = self.queries.filtered(
            query, **self._filters(station_id, aircraft_id, carrier_id))

        return query.order_by(
            Allocation.station_id,
            Allocation.aircraft_id
        )

    def overlapping_range(
        self,
        start: datetime | str,
        end: datetime | str | None = None,
        station_id: str | None = None,
        aircraft_id: str | None = None,
        carrier_id: str | None = None
    ) -> Query[Allocation]:
        """ Returns the allocations sharing at least one instant with the
        range [start, end), ordered by start. Unlike :meth:`active_at`
        this includes allocations which start or end within the range.

        """
        start = self.standardize(start, 'start')
        end = utils.parse_optional_moment(end, self.timezone, 'end')

        if end is not None and end <= start:
            raise errors.ValidationError('end', 'must be after the start')

        query = self.managed_allocations()
        query = self.queries.overlapping_range(query, start, end)
        query = self.queries.filtered(
            query, **self._filters(station_id, aircraft_id, carrier_id))

        return query.order_by(Allocation.period_start, Allocation.aircraft_id)

    def history(self, aircraft_id: str) -> Query[Allocation]:
        """ Returns all allocations of the given aircraft, latest first. """
        aircraft_id = utils.normalize_code(aircraft_id, 'aircraft_id')

        query = self.managed_allocations()
        query = self.queries.filtered(query, aircraft_id=aircraft_id)

        return query.order_by(Allocation.period_start.desc())

    def conflicts(
        self,
        aircraft_id: str,
        start: datetime | str,
        end: datetime | str | None = None,
        exclude_id: UUID | str | None = None
    ) -> Query[Allocation]:
        """ Returns the allocations which would prevent the given aircraft
        from being allocated to [start, end). Useful to validate a form
        before submitting it, the same check is done on every write.

        When editing an allocation, pass its id as exclude_id.

        """
        return self.queries.conflicting_allocations(
            utils.normalize_code(aircraft_id, 'aircraft_id'),
            self.standardize(start, 'period_start'),
            utils.parse_optional_moment(end, self.timezone, 'period_end'),
            exclude_id=as_uuid(exclude_id) if exclude_id else None
        )

    def summary_at(
        self,
        when: datetime | str | None = None,
        carrier_id: str | None = None,
        stations: Iterable[str] = ()
    ) -> dict[str, summary.StationSummary]:
        """ Returns the number of aircraft per station (and carrier) at the
        given instant. Stations passed explicitly are included even if they
        are empty.

        """
        with self.translated_errors():
            return summary.summarize(
                self.active_at(when, carrier_id=carrier_id),
                stations=(
                    utils.normalize_code(s, 'station_id') for s in stations
                )
            )

    def station_count_at(
        self,
        station_id: str,
        when: datetime | str | None = None
    ) -> int:
        """ Returns the number of aircraft at the station at the given
        instant, as counted by :meth:`summary_at`.

        """
        station_id = utils.normalize_code(station_id, 'station_id')

        with self.translated_errors():
            summaries = summary.summarize(
                self.active_at(when, station_id=station_id),
                stations=(station_id, )
            )

        return summaries[station_id].total_count

    def longest_sits(
        self,
        now: datetime | str | None = None,
        limit: int | None = None
    ) -> list[Allocation]:
        """ Returns the allocations active now, longest ground time first.
        """
        moment = self.clock() if now is None else self.standardize(now)
        if limit is None:
            limit = self.context.get_setting('longest_sits_limit')

        query = self.managed_allocations()
        query = self.queries.active_at(query, moment)
        query = query.order_by(
            Allocation.period_start,
            Allocation.aircraft_id
        )

        with self.translated_errors():
            return query.limit(limit).all()

    def _validated(
        self,
        values: dict[str, Any]
    ) -> dict[str, Any]:

        values['aircraft_id'] = utils.normalize_code(
            values.get('aircraft_id'), 'aircraft_id')
        values['station_id'] = utils.normalize_code(
            values.get('station_id'), 'station_id')
        values['period_start'] = utils.parse_moment(
            values.get('period_start'), self.timezone, 'period_start')
        values['period_end'] = utils.parse_optional_moment(
            values.get('period_end'), self.timezone, 'period_end')

        if values['period_end'] is not None:
            if values['period_end'] <= values['period_start']:
                raise errors.ValidationError(
                    'period_end', 'must be after the start')

        for field in (
            'carrier_id',
            'airline_code',
            'inbound_flight_number',
            'outbound_flight_number'
        ):
            values[field] = _optional_text(values.get(field))

        if values.get('data') is not None:
            if not isinstance(values['data'], dict):
                raise errors.ValidationError('data', 'must be a dictionary')

        return values

    def _assert_no_conflict(
        self,
        values: dict[str, Any],
        exclude_id: UUID | None = None
    ) -> None:

        query = self.queries.conflicting_allocations(
            values['aircraft_id'],
            values['period_start'],
            values['period_end'],
            exclude_id=exclude_id
        )

        with self.translated_errors():
            existing = query.first()

        if existing is not None:
            log.info(
                'Rejected %s at %s, overlaps with allocation %s',
                values['aircraft_id'], values['station_id'], existing.id
            )
            raise errors.OverlapConflict(
                values['period_start'], values['period_end'], existing)

    def create(
        self,
        aircraft_id: str,
        station_id: str,
        period_start: datetime | str,
        period_end: datetime | str | None = None,
        carrier_id: str | None = None,
        airline_code: str | None = None,
        inbound_flight_number: str | None = None,
        outbound_flight_number: str | None = None,
        data: dict[str, Any] | None = None
    ) -> Allocation:
        """ Records the aircraft at the station from period_start until
        period_end (exclusive). Without period_end the allocation is
        ongoing.

        Naive dates are assumed to be in the timezone of the store.

        Raises :class:`~tailtrack.modules.errors.ValidationError` if a field
        is missing or invalid and
        :class:`~tailtrack.modules.errors.OverlapConflict` if the aircraft
        is already allocated during the period.

        """

        values = self._validated({
            'aircraft_id': aircraft_id,
            'station_id': station_id,
            'period_start': period_start,
            'period_end': period_end,
            'carrier_id': carrier_id,
            'airline_code': airline_code,
            'inbound_flight_number': inbound_flight_number,
            'outbound_flight_number': outbound_flight_number,
            'data': data,
        })

        self._assert_no_conflict(values)

        allocation = self.allocation_cls()
        allocation.id = new_uuid()
        allocation.data = values.pop('data') or {}

        for key, value in values.items():
            setattr(allocation, key, value)

        self.session.add(allocation)
        self._flush(ChangeEvent.from_allocation('created', allocation))

        log.debug('Created allocation %r', allocation)

        return allocation

    def update(self, id: UUID | str, **fields: Any) -> Allocation:
        """ Changes the given fields of the allocation, keeping the others.

        Changing the station corrects the record, it does not record a
        move. Passing period_end=None makes the allocation ongoing.

        The allocation is checked against the other allocations of the
        aircraft, but never against itself. Raises the same errors as
        :meth:`create` and
        :class:`~tailtrack.modules.errors.AllocationNotFound` if the
        allocation does not exist (anymore).

        """

        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            field = sorted(unknown)[0]
            raise errors.ValidationError(field, 'unknown field')

        allocation = self.allocation_by_id(id)
        previous = ChangeEvent.from_allocation('updated', allocation)

        values = {field: getattr(allocation, field) for field in UPDATABLE_FIELDS}
        values.update(fields)
        values = self._validated(values)

        self._assert_no_conflict(values, exclude_id=allocation.id)

        if 'data' in fields:
            allocation.data = values['data'] or {}
        values.pop('data')

        for key, value in values.items():
            if getattr(allocation, key) != value:
                setattr(allocation, key, value)

        self._flush(
            ChangeEvent.from_allocation('updated', allocation, previous))

        log.debug('Updated allocation %r', allocation)

        return allocation

    def delete(self, id: UUID | str) -> None:
        """ Removes the allocation. Raises
        :class:`~tailtrack.modules.errors.AllocationNotFound` if the
        allocation does not exist (anymore).

        """

        allocation = self.allocation_by_id(id)
        change = ChangeEvent.from_allocation('deleted', allocation)

        self.session.delete(allocation)
        self._flush(change)

        log.debug('Deleted allocation %r', allocation)

    @contextmanager
    def translated_errors(self) -> Iterator[None]:
        """ Turns database errors raised inside the block into
        :class:`~tailtrack.modules.errors.StoreError`. The session is rolled
        back, it is unusable after such an error.

        """
        try:
            yield
        except SQLAlchemyError as e:
            log.warning("The database failed: %s", e)
            self.rollback()
            raise errors.StoreError(str(e)) from e

    @property
    def staged_changes(self) -> list[ChangeEvent]:
        """ The changes written in the current transaction. """
        return self.session.info.setdefault(STAGED_CHANGES, [])  # type: ignore[no-any-return]

    def _flush(self, change: ChangeEvent) -> None:
        try:
            self.session.flush()
        except DBAPIError as e:
            self._reject(e, [*self.staged_changes, change])

        self.staged_changes.append(change)

    def _reject(
        self,
        error: DBAPIError,
        changes: Sequence[ChangeEvent]
    ) -> NoReturn:
        """ Rolls back and raises the error explaining why the database
        refused the given changes.

        """
        self.rollback()

        if getattr(error.orig, 'pgcode', None) in CONFLICT_CODES:
            # the transaction that got in the way is committed by now, a new
            # transaction shows which allocation it wrote
            for change in changes:
                if change.kind == 'deleted':
                    continue

                aircraft_id = change.aircraft_ids[-1]
                period = change.periods[-1]
                query = self.queries.conflicting_allocations(
                    aircraft_id,
                    period.start,
                    period.end,
                    exclude_id=change.allocation_id
                )

                with self.translated_errors():
                    existing = query.first()

                if existing is not None:
                    log.info(
                        'Rejected concurrent write of %s, overlaps with '
                        'allocation %s', aircraft_id, existing.id
                    )
                    raise errors.OverlapConflict(
                        period.start, period.end, existing) from error

        log.warning('The database refused a write: %s', error)
        raise errors.StoreError(str(error)) from error

    def commit(self) -> None:
        """ Commits the current transaction and publishes its changes.
        """
        changes = list(self.staged_changes)

        try:
            self.session.commit()
        except DBAPIError as e:
            self._reject(e, changes)

        self.session.info.pop(STAGED_CHANGES, None)
        self.changes.publish(changes)

    def rollback(self) -> None:
        self.session.info.pop(STAGED_CHANGES, None)
        self.session.rollback()

    def close(self) -> None:
        self.session.info.pop(STAGED_CHANGES, None)
        self.session.close()

