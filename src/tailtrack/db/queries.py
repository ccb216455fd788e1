from __future__ import annotations

from tailtrack.context.core import ContextServicesMixin
from tailtrack.db.models import Allocation


from typing import TypeVar
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from datetime import datetime
    from sqlalchemy.orm import Query
    from uuid import UUID

    from tailtrack.context.core import Context

_T = TypeVar('_T')


class Queries(ContextServicesMixin):
    """ Contains the filters shared by all allocation queries.

    The filters are staticmethods taking a query and returning a narrowed
    down query, so they can be combined freely. Methods which need the
    session are bound to the context.

    """

    def __init__(self, context: Context):
        self.context = context

    def all_allocations(self) -> Query[Allocation]:
        return self.session.query(Allocation)

    @staticmethod
    def active_at(query: Query[_T], when: datetime) -> Query[_T]:
        """ Limits the query to allocations active at the given instant. """
        return query.filter(Allocation.is_active_at(when))

    @staticmethod
    def overlapping_range(
        query: Query[_T],
        start: datetime,
        end: datetime | None
    ) -> Query[_T]:
        """ Limits the query to allocations sharing at least one instant
        with [start, end). An end of None leaves the range open.

        """
        return query.filter(Allocation.overlaps(start, end))

    @staticmethod
    def filtered(
        query: Query[_T],
        station_id: str | None = None,
        aircraft_id: str | None = None,
        carrier_id: str | None = None
    ) -> Query[_T]:
        """ Limits the query by the given station, aircraft or carrier,
        ignoring the ones which are None.

        """
        if station_id is not None:
            query = query.filter(Allocation.station_id == station_id)

        if aircraft_id is not None:
            query = query.filter(Allocation.aircraft_id == aircraft_id)

        if carrier_id is not None:
            query = query.filter(Allocation.carrier_id == carrier_id)

        return query

    def conflicting_allocations(
        self,
        aircraft_id: str,
        start: datetime,
        end: datetime | None,
        exclude_id: UUID | None = None
    ) -> Query[Allocation]:
        """ Returns the allocations of the given aircraft which overlap the
        given period, ordered by start. The allocation with the given
        exclude_id is ignored, an allocation never conflicts with itself.

        """
        query = self.filtered(self.all_allocations(), aircraft_id=aircraft_id)
        query = self.overlapping_range(query, start, end)

        if exclude_id is not None:
            query = query.filter(Allocation.id != exclude_id)

        return query.order_by(Allocation.period_start)
