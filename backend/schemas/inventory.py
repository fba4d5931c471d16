# backend/schemas/inventory.py
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, StrictInt

from models.stock import MovementType
from schemas.common import ORMBase
from schemas.product import ProductRef
from schemas.warehouse import WarehouseRef


# Request body for POST /inventory/adjust.
# For incoming/outgoing the quantity is a delta, for adjustment it is the new absolute level.
class AdjustStockRequest(BaseModel):
    product_id: UUID
    warehouse_id: UUID
    quantity: StrictInt = Field(ge=0)
    movement_type: MovementType
    reason: Optional[str] = Field(default=None, max_length=500)
    location: Optional[str] = Field(default=None, max_length=255)


class InventoryItemResponse(ORMBase):
    id: UUID
    product_id: UUID
    warehouse_id: UUID
    quantity: int
    location_in_warehouse: Optional[str] = None
    last_updated: Optional[datetime] = None
    product: Optional[ProductRef] = None
    warehouse: Optional[WarehouseRef] = None


class InventoryPage(BaseModel):
    items: List[InventoryItemResponse]
    total: int
    page: int
    page_size: int
