# backend/schemas/stock.py
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel

from models.stock import MovementType
from schemas.common import ORMBase
from schemas.user import UserRef


# Schema for returning stock movement details
class StockMovementResponse(ORMBase):
    id: UUID
    inventory_id: UUID
    movement_type: MovementType
    quantity_change: int
    previous_quantity: int
    new_quantity: int
    reason: Optional[str] = None
    user_id: UUID
    created_at: Optional[datetime] = None
    user: Optional[UserRef] = None
    # Filled from the inventory row by the listing endpoints
    warehouse_id: Optional[UUID] = None
    product_id: Optional[UUID] = None
    product_name: Optional[str] = None
    product_sku: Optional[str] = None


# Paginated response for stock movement history
class StockMovementPage(BaseModel):
    items: List[StockMovementResponse]
    total: int
    page: int
    page_size: int
