from __future__ import annotations


from typing import NamedTuple
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from datetime import datetime


class Period(NamedTuple):
    """ A half-open interval ``[start, end)``. An end of None means the
    period is ongoing, it is treated as lying infinitely in the future.

    """

    start: datetime
    end: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.end is None

    def contains(self, when: datetime) -> bool:
        """ True if the period is active at the given instant. """
        return self.start <= when and (self.end is None or when < self.end)

    def overlaps(self, other: Period) -> bool:
        """ True if both periods share at least one instant. Periods which
        merely touch (one ends where the other starts) do not overlap.

        """
        if other.end is not None and not self.start < other.end:
            return False

        if self.end is not None and not other.start < self.end:
            return False

        return True
