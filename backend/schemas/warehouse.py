# backend/schemas/warehouse.py
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from schemas.common import ORMBase, reject_explicit_nulls
from schemas.user import UserRef


class WarehouseCreate(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    location: Optional[str] = None
    capacity: Optional[int] = Field(default=None, gt=0)
    manager_id: Optional[UUID] = None


# Schema for partial warehouse updates
class WarehouseUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    location: Optional[str] = None
    capacity: Optional[int] = Field(None, gt=0)
    manager_id: Optional[UUID] = None

    @model_validator(mode="after")
    def _no_nulls(self):
        reject_explicit_nulls(self, ("name",))
        return self


class WarehouseResponse(ORMBase):
    id: UUID
    name: str
    location: Optional[str] = None
    capacity: Optional[int] = None
    manager_id: Optional[UUID] = None
    is_active: bool
    created_at: Optional[datetime] = None
    manager: Optional[UserRef] = None


# Compact warehouse reference embedded in inventory rows
class WarehouseRef(ORMBase):
    id: UUID
    name: str
    location: Optional[str] = None


# Paginated response schema for warehouses
class WarehousePage(BaseModel):
    items: List[WarehouseResponse]
    total: int
    page: int
    page_size: int


class WarehouseStats(BaseModel):
    total_products: int
    total_quantity: int
    low_stock_items: int
    utilization: int
