from __future__ import annotations

import pytest
from _pytest.fixtures import FixtureLookupError

from tailtrack import new_store, registry
# FIXME: Switch to pytest-postgresql, testing.postgresql is unmaintained
from testing.postgresql import Postgresql  # type: ignore[import-untyped]
from uuid import uuid4 as new_uuid


from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from collections.abc import Generator
    from tailtrack.db.store import AllocationStore


def new_test_store(
    dsn: str,
    context_name: str | None = None,
    timezone: str = 'UTC'
) -> AllocationStore:

    context_name = context_name or new_uuid().hex

    context = registry.register_context(context_name, replace=True)
    context.set_setting('dsn', dsn)

    return new_store(context=context, timezone=timezone)


@pytest.fixture
def store(
    request: pytest.FixtureRequest,
    dsn: str
) -> Generator[AllocationStore, None, None]:

    try:
        context = request.getfixturevalue('store_context')
    except FixtureLookupError:
        context = None

    store = new_test_store(dsn, context)

    try:
        isolation_level = request.getfixturevalue('store_isolation_level')
    except FixtureLookupError:
        pass
    else:
        store.context.set_setting('isolation_level', isolation_level)

    yield store

    store.rollback()
    store.extinguish_managed_records()
    store.commit()
    store.close()
    store.session_provider.stop_service()


@pytest.fixture(scope="session")
def dsn() -> Generator[str, None, None]:
    postgres = Postgresql()

    store = new_test_store(postgres.url())
    store.setup_database()
    store.commit()

    yield postgres.url()

    store.close()
    store.session_provider.stop_service()

    postgres.stop()
