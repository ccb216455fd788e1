""" Aggregates allocations into per-station counts.

The allocations passed to :func:`summarize` are expected to come from
:meth:`tailtrack.db.store.AllocationStore.active_at`, which is the only
place deciding whether an aircraft is at a station at a given time. The
map summary, the station listing and the capacity check all count through
here, so they always agree.
"""
from __future__ import annotations

from collections import Counter, defaultdict


from typing import NamedTuple
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from collections.abc import Iterable

    from tailtrack.db.models import Allocation


class CarrierCount(NamedTuple):
    carrier_id: str | None
    count: int


class StationSummary(NamedTuple):
    station_id: str
    total_count: int
    carrier_breakdown: tuple[CarrierCount, ...]

    def available_spots(self, total_spots: int | None) -> int | None:
        return available_spots(total_spots, self.total_count)


def summarize(
    allocations: Iterable[Allocation],
    stations: Iterable[str] = ()
) -> dict[str, StationSummary]:
    """ Groups the given allocations by station and carrier.

    Stations given explicitly are part of the result even if no allocation
    was counted for them (with a count of zero).

    """
    counts: defaultdict[str, Counter[str | None]] = defaultdict(Counter)

    for station_id in stations:
        counts.setdefault(station_id, Counter())

    for allocation in allocations:
        counts[allocation.station_id][allocation.carrier_id] += 1

    return {
        station_id: StationSummary(
            station_id=station_id,
            total_count=sum(carriers.values()),
            carrier_breakdown=tuple(
                CarrierCount(carrier_id, count)
                for carrier_id, count in sorted(
                    carriers.items(),
                    key=lambda item: (-item[1], item[0] or '')
                )
            )
        )
        for station_id, carriers in sorted(counts.items())
    }


def available_spots(total_spots: int | None, count: int) -> int | None:
    """ Returns the spots left at a station, None if the capacity of the
    station is unknown. Overbooked stations have no spots left.

    """
    if total_spots is None:
        return None

    return max(total_spots - count, 0)
