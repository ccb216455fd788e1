from __future__ import annotations

from tailtrack.db.models import Allocation
from tailtrack.db.store import AllocationStore


from typing import Any
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from tailtrack.context.core import Context


def new_store(
    context: Context | str,
    timezone: str = 'UTC',
    settings: dict[str, Any] | None = None,
    allocation_cls: type[Allocation] = Allocation
) -> AllocationStore:
    """ Returns a new store operating on the given context.

    The context may be given by name, in which case it is registered on
    the default registry if it doesn't exist yet. Settings given as
    dictionary (e.g. ``{'dsn': 'postgresql://...'}``) are set on the
    context before the store is created.

    """
    if isinstance(context, str):
        from tailtrack import registry
        context = registry.get_context(context, autocreate=True)

    for name, value in (settings or {}).items():
        context.set_setting(name.removeprefix('settings.'), value)

    return AllocationStore(context, timezone, allocation_cls)


__all__ = ('Allocation', 'AllocationStore', 'new_store')
