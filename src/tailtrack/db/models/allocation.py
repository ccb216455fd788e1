from __future__ import annotations

import sedate

from datetime import datetime, timedelta
from sqlalchemy import event
from sqlalchemy import types
from sqlalchemy.ext.hybrid import hybrid_method
from sqlalchemy.orm import mapped_column
from sqlalchemy.orm import Mapped
from sqlalchemy.schema import CheckConstraint
from sqlalchemy.schema import DDL
from sqlalchemy.schema import Index
from sqlalchemy.sql import and_, or_, true
from uuid import UUID, uuid4 as new_uuid

from tailtrack.db.models.base import ORMBase
from tailtrack.db.models.period import Period
from tailtrack.db.models.timestamp import TimestampMixin


from typing import Any
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from sedate.types import TzInfoOrName
    from sqlalchemy.sql import ColumnElement


#: name of the constraint keeping the periods of an aircraft apart
EXCLUSION_CONSTRAINT = 'no_overlapping_periods'


class Allocation(TimestampMixin, ORMBase):
    """Describes an aircraft sitting at a station during a period.

    The period is half-open: it includes its start and excludes its end,
    so an aircraft may leave one station at 17:00 and be allocated to the
    next station from 17:00 onwards. A period without end is ongoing.

    The periods of allocations of the same aircraft never overlap. This is
    checked by :class:`tailtrack.db.store.AllocationStore` before writing
    and enforced by an exclusion constraint in the database, which is what
    keeps concurrent writers from both succeeding.

    """

    __tablename__ = 'aircraft_allocations'

    #: the id of the allocation, generated on creation
    id: Mapped[UUID] = mapped_column(primary_key=True, default=new_uuid)

    #: the tail number of the aircraft, there are many allocations per tail
    aircraft_id: Mapped[str] = mapped_column(types.Text())

    #: the IATA code of the station the aircraft sits at
    station_id: Mapped[str] = mapped_column(types.Text())

    #: the carrier operating the aircraft
    carrier_id: Mapped[str | None] = mapped_column(types.Text())

    airline_code: Mapped[str | None] = mapped_column(types.Text())

    inbound_flight_number: Mapped[str | None] = mapped_column(types.Text())

    outbound_flight_number: Mapped[str | None] = mapped_column(types.Text())

    #: custom data reserved for the user
    data: Mapped[dict[str, Any]] = mapped_column(default=dict)

    #: the start of the period, inclusive
    period_start: Mapped[datetime]

    #: the end of the period, exclusive, None if ongoing
    period_end: Mapped[datetime | None]

    __table_args__ = (
        CheckConstraint(
            'period_end IS NULL OR period_end > period_start',
            name='period_order'
        ),
        Index('ix_aircraft_allocations_aircraft_id', 'aircraft_id'),
        Index('ix_aircraft_allocations_station_id', 'station_id'),
    )

    def __repr__(self) -> str:
        return (
            f'<Allocation {self.aircraft_id} at {self.station_id} '
            f'{self.period_start} - {self.period_end or "ongoing"}>'
        )

    @property
    def period(self) -> Period:
        return Period(self.period_start, self.period_end)

    @property
    def is_ongoing(self) -> bool:
        return self.period_end is None

    @hybrid_method
    def is_active_at(self, when: datetime) -> bool:
        """ True if the allocation is active at the given instant.

        This is *the* definition of what it means for an aircraft to be at
        a station at a given time. Queries use the same definition through
        the expression below, so there is no other place to get this wrong.

        """
        return self.period.contains(when)

    @is_active_at.inplace.expression
    @classmethod
    def _is_active_at_expression(cls, when: datetime) -> ColumnElement[bool]:
        return and_(
            cls.period_start <= when,
            or_(cls.period_end.is_(None), cls.period_end > when)
        )

    @hybrid_method
    def overlaps(self, start: datetime, end: datetime | None) -> bool:
        """ True if the allocation overlaps the period [start, end). An end
        of None is treated as lying infinitely in the future.

        """
        return self.period.overlaps(Period(start, end))

    @overlaps.inplace.expression
    @classmethod
    def _overlaps_expression(
        cls,
        start: datetime,
        end: datetime | None
    ) -> ColumnElement[bool]:
        return and_(
            cls.period_start < end if end is not None else true(),
            or_(cls.period_end.is_(None), cls.period_end > start)
        )

    def ground_time(self, now: datetime) -> timedelta:
        """ Returns the time the aircraft spent on the ground at the station
        until now (or until the end of the period if it lies before now).

        Periods starting in the future have no ground time yet.

        """
        if self.period_end is not None and self.period_end < now:
            end = self.period_end
        else:
            end = now

        return max(end - self.period_start, timedelta())

    def ground_time_minutes(self, now: datetime) -> int:
        return int(self.ground_time(now).total_seconds() // 60)

    def display_start(self, timezone: TzInfoOrName = 'UTC') -> datetime:
        """Returns the start in the given timezone, usually the one of the
        station."""
        return sedate.to_timezone(self.period_start, timezone)

    def display_end(self, timezone: TzInfoOrName = 'UTC') -> datetime | None:
        """Returns the end in the given timezone or None if ongoing."""
        if self.period_end is None:
            return None

        return sedate.to_timezone(self.period_end, timezone)

    def as_dict(self) -> dict[str, Any]:
        return {
            'id': str(self.id),
            'aircraft_id': self.aircraft_id,
            'station_id': self.station_id,
            'carrier_id': self.carrier_id,
            'airline_code': self.airline_code,
            'inbound_flight_number': self.inbound_flight_number,
            'outbound_flight_number': self.outbound_flight_number,
            'period_start': self.period_start.isoformat(),
            'period_end': self.period_end and self.period_end.isoformat(),
            'data': dict(self.data or {}),
        }


# the exclusion constraint needs the btree_gist extension for the equality
# on the tail number, both are postgres only
event.listen(
    Allocation.__table__,
    'before_create',
    DDL('CREATE EXTENSION IF NOT EXISTS btree_gist').execute_if(
        dialect='postgresql'
    )
)

event.listen(
    Allocation.__table__,
    'after_create',
    DDL(f"""
        ALTER TABLE %(table)s
        ADD CONSTRAINT {EXCLUSION_CONSTRAINT}
        EXCLUDE USING gist (
            aircraft_id WITH =,
            tsrange(period_start, period_end, '[)') WITH &&
        )
    """).execute_if(dialect='postgresql')
)

event.listen(
    Allocation.__table__,
    'after_create',
    DDL("""
        CREATE INDEX ix_%(table)s_period
        ON %(table)s
        USING gist (tsrange(period_start, period_end, '[)'))
    """).execute_if(dialect='postgresql')
)
