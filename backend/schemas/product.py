# backend/schemas/product.py
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from schemas.common import ORMBase, reject_explicit_nulls


# Shared base attributes for product entities
class ProductBase(ORMBase):
    sku: str = Field(min_length=3, max_length=100)
    name: str = Field(min_length=2, max_length=255)
    category: Optional[str] = None
    description: Optional[str] = None
    unit_price: float = Field(gt=0)
    image_url: Optional[str] = None
    reorder_point: int = Field(default=10, gt=0)
    optimal_stock: int = Field(default=50, gt=0)


# Schema for creating a new product
class ProductCreate(ProductBase):
    pass


# Schema for partial product updates
class ProductUpdate(ORMBase):
    """All fields optional; only the ones sent are applied."""
    sku: Optional[str] = Field(None, min_length=3, max_length=100)
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    category: Optional[str] = None
    description: Optional[str] = None
    unit_price: Optional[float] = Field(None, gt=0)
    image_url: Optional[str] = None
    reorder_point: Optional[int] = Field(None, gt=0)
    optimal_stock: Optional[int] = Field(None, gt=0)

    @model_validator(mode="after")
    def _no_nulls(self):
        reject_explicit_nulls(self, ("sku", "name", "unit_price", "reorder_point", "optimal_stock"))
        return self


# Full product representation including ID
class ProductResponse(ProductBase):
    id: UUID
    created_at: Optional[datetime] = None


# Compact product reference embedded in inventory rows
class ProductRef(ORMBase):
    id: UUID
    sku: str
    name: str
    reorder_point: int
    optimal_stock: int


# Paginated response for product listings
class ProductListPage(BaseModel):
    items: List[ProductResponse]
    total: int
    page: int
    page_size: int


class CategoryCount(BaseModel):
    category: str
    count: int
