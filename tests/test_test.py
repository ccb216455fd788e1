from __future__ import annotations

import pytest

from tailtrack.db.models import Allocation


from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from tailtrack.db.store import AllocationStore


@pytest.mark.parametrize('execution_number', range(2))
@pytest.mark.parametrize('store_context', ['test'])
def test_independence(
    store: AllocationStore,
    execution_number: int,
    store_context: str
) -> None:
    """ Test the independence of tests. This test is run twice with the exact
    same records written. If any records remain after a single test run, the
    second run of this test fails.

    This ensures proper separation between tests.

    """
    assert store.context.name == store_context

    store.create('N123AB', 'DFW', '2014-04-04T14:00', '2014-04-04T15:00')
    store.commit()

    # note, if this fails for you you probably created your own store and
    # wrote to it without cleaning up -> call
    # store.extinguish_managed_records followed by a commit!
    assert store.managed_allocations().count() == 1
    assert store.session.query(Allocation).count() == 1
