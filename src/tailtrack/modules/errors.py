from __future__ import annotations

from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from tailtrack.db.models import Allocation


def _format_moment(value: datetime) -> str:
    return f'{value:%b} {value.day}, {value:%H:%M}'


class TailtrackError(Exception):
    pass


class ContextAlreadyExists(TailtrackError):
    pass


class UnknownContext(TailtrackError):
    pass


class ContextIsLocked(TailtrackError):
    pass


class UnknownService(TailtrackError):
    pass


class ValidationError(TailtrackError):
    """ Raised if a write is missing a required field or if a field has an
    invalid value. The name of the field is available on the error, so it
    can be mapped to the right form field.

    """

    __slots__ = ('field', 'message')

    def __init__(self, field: str, message: str):
        super().__init__(field, message)
        self.field = field
        self.message = message

    def __str__(self) -> str:
        return f'{self.field}: {self.message}'


class AllocationNotFound(TailtrackError):

    __slots__ = ('id', )

    def __init__(self, id: UUID | str):
        super().__init__(id)
        self.id = id

    def __str__(self) -> str:
        return f'Allocation {self.id} no longer exists, please refresh'


class OverlapConflict(TailtrackError):
    """ Raised if an allocation would overlap with an existing allocation
    of the same aircraft. The existing allocation is the one found to be in
    the way, there may be others.

    """

    __slots__ = ('start', 'end', 'existing')

    def __init__(
        self,
        start: datetime,
        end: datetime | None,
        existing: Allocation
    ):
        super().__init__(start, end, existing)
        self.start = start
        self.end = end
        self.existing = existing

    @property
    def message(self) -> str:
        start = _format_moment(self.existing.period_start)

        if self.existing.period_end is None:
            end = 'ongoing'
        else:
            end = _format_moment(self.existing.period_end)

        return (
            f'Overlaps with allocation at {self.existing.station_id} '
            f'({start} - {end})'
        )

    def __str__(self) -> str:
        return self.message


class StoreError(TailtrackError):
    """ Raised if the database could not complete a request. Writes
    are not retried.

    """
