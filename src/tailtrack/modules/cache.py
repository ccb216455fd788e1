from __future__ import annotations

import logging
import threading

from collections import OrderedDict


from typing import Any
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime
    from typing_extensions import TypeAlias

    from tailtrack.db.store import AllocationStore
    from tailtrack.modules.events import ChangeEvent

    _Key: TypeAlias = tuple[datetime, tuple[tuple[str, str], ...]]


log = logging.getLogger('tailtrack')


class ActiveAtCache:
    """ Caches point-in-time results of a store for the component owning
    the cache.

    By default the cache holds the allocations active at an instant (as
    dictionaries, so they outlive the session they were loaded with).
    A different loader may be given, for example
    :meth:`~tailtrack.db.store.AllocationStore.summary_at`. The loader is
    called with the instant and the filters passed to :meth:`get`.

    Entries are dropped when a committed change touches their instant,
    that is when the old or the new period of a changed allocation
    contains it. Other entries stay valid.

    At most maxsize results are kept, the least recently used result is
    dropped first.

    """

    def __init__(
        self,
        store: AllocationStore,
        loader: Callable[..., Any] | None = None,
        maxsize: int = 256
    ):
        self.store = store
        self.loader = loader or self.load_allocations
        self.maxsize = maxsize
        self.entries: OrderedDict[_Key, Any] = OrderedDict()
        self.generation = 0
        self.lock = threading.Lock()
        self.subscription = store.changes.subscribe(callback=self.invalidate)

    def load_allocations(
        self,
        when: datetime,
        **filters: str
    ) -> tuple[dict[str, Any], ...]:
        return tuple(
            allocation.as_dict()
            for allocation in self.store.active_at(when, **filters)
        )

    def get(self, when: datetime | str, **filters: str | None) -> Any:
        moment = self.store.standardize(when)
        given = {k: v for k, v in filters.items() if v is not None}
        key = (moment, tuple(sorted(given.items())))

        with self.lock:
            if key in self.entries:
                self.entries.move_to_end(key)
                return self.entries[key]
            generation = self.generation

        value = self.loader(moment, **given)

        # a change committed while loading may not be part of the value
        with self.lock:
            if generation == self.generation:
                self.entries[key] = value

                while len(self.entries) > self.maxsize:
                    self.entries.popitem(last=False)

        return value

    def invalidate(self, change: ChangeEvent) -> None:
        with self.lock:
            self.generation += 1
            stale = [
                key for key in self.entries
                if any(period.contains(key[0]) for period in change.periods)
            ]

            for key in stale:
                del self.entries[key]

        if stale:
            log.debug(
                'Dropped %d cached results after %s of allocation %s',
                len(stale), change.kind, change.allocation_id
            )

    def clear(self) -> None:
        with self.lock:
            self.entries.clear()

    def close(self) -> None:
        """ Stops listening to changes and empties the cache. """
        self.subscription.close()
        self.clear()

    def __len__(self) -> int:
        return len(self.entries)
