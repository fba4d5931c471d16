# backend/schemas/common.py
from typing import Iterable

from pydantic import BaseModel, ConfigDict


# Base configuration for ORM compatibility
class ORMBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Partial updates may omit a field but never null out a NOT NULL column
def reject_explicit_nulls(model: BaseModel, fields: Iterable[str]) -> None:
    for name in fields:
        if name in model.model_fields_set and getattr(model, name) is None:
            raise ValueError(f"{name} cannot be null")
