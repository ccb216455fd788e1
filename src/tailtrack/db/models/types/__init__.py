from .json_type import JSON
from .utcdatetime import UTCDateTime
from .uuid_type import UUID

__all__ = ['JSON', 'UTCDateTime', 'UUID']
