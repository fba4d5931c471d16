# backend/utils/ids.py
from typing import Union
from uuid import UUID

from utils.errors import ValidationFailed


def as_uuid(value: Union[UUID, str], field: str) -> UUID:
    # Accept UUID objects and their string form; anything else is a validation error
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise ValidationFailed(f"{field} must be a valid UUID", field=field)
