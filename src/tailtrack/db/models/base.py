from __future__ import annotations

from datetime import datetime
from sqlalchemy import MetaData
from sqlalchemy.orm import registry
from sqlalchemy.orm import DeclarativeBase
from uuid import UUID as PythonUUID

from .types import JSON
from .types import UTCDateTime
from .types import UUID


from typing import Any


#: constraint names show up in database errors, keep them predictable
naming_convention = {
    'ix': 'ix_%(table_name)s_%(column_0_name)s',
    'ck': 'ck_%(table_name)s_%(constraint_name)s',
    'pk': 'pk_%(table_name)s',
}


class ORMBase(DeclarativeBase):

    metadata = MetaData(naming_convention=naming_convention)

    registry = registry(
        metadata=metadata,
        type_annotation_map={
            datetime: UTCDateTime(timezone=False),
            dict[str, Any]: JSON,
            PythonUUID: UUID,
        }
    )
