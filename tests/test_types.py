from __future__ import annotations

from tailtrack.db.models.types.uuid_type import SoftUUID, as_uuid
from uuid import uuid4


def test_string_equal_uuid() -> None:
    uuid = uuid4()

    assert uuid == SoftUUID(uuid.hex)
    assert uuid.hex == SoftUUID(uuid.hex)
    assert str(uuid) == SoftUUID(uuid.hex)
    assert str(uuid).upper() == SoftUUID(uuid.hex)


def test_hashable_uuid() -> None:
    uuid = uuid4()

    assert hash(SoftUUID(uuid.hex))
    assert hash(SoftUUID(uuid.hex)) == hash(SoftUUID(str(uuid)))


def test_as_uuid() -> None:
    uuid = uuid4()

    assert as_uuid(uuid) == uuid
    assert isinstance(as_uuid(uuid), SoftUUID)
    assert as_uuid(str(uuid)) == uuid
    assert as_uuid(f' {uuid.hex} ') == uuid
    assert as_uuid('not-a-uuid') is None
    assert as_uuid('') is None
