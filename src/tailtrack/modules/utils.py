from __future__ import annotations

import sedate

from datetime import datetime
from dateutil.parser import isoparse

from tailtrack.modules import errors


from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from sedate.types import TzInfoOrName


def normalize_code(value: object, field: str) -> str:
    """ Turns tail numbers and station codes into their canonical form
    (stripped, uppercase). Raises a validation error if the value is
    missing or not a string.

    """
    if not isinstance(value, str) or not value.strip():
        raise errors.ValidationError(field, 'required')

    return value.strip().upper()


def parse_moment(
    value: datetime | str | None,
    timezone: TzInfoOrName,
    field: str
) -> datetime:
    """ Returns the given value as a timezone aware datetime in UTC.

    Strings are parsed as ISO-8601. Naive dates (or strings without an
    offset) are assumed to be in the given timezone.

    """
    if value is None or value == '':
        raise errors.ValidationError(field, 'required')

    if isinstance(value, str):
        try:
            value = isoparse(value.strip())
        except (ValueError, OverflowError) as e:
            raise errors.ValidationError(
                field, f'not a valid date: {e}') from e

    if not isinstance(value, datetime):
        raise errors.ValidationError(field, 'not a valid date')

    return sedate.standardize_date(value, timezone)


def parse_optional_moment(
    value: datetime | str | None,
    timezone: TzInfoOrName,
    field: str
) -> datetime | None:

    if value is None or value == '':
        return None

    return parse_moment(value, timezone, field)
