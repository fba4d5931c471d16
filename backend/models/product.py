# backend/models/product.py
import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, Float, Integer, String, Text, Uuid, func
from sqlalchemy.orm import relationship
from database import Base


# Catalogue entry. reorder_point and optimal_stock drive the stock alerts
# raised by services/inventory.py.
class Product(Base):
    __tablename__ = "products"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    sku = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False, index=True)
    category = Column(String(100), nullable=True, index=True)
    description = Column(Text, nullable=True)
    unit_price = Column(Float, CheckConstraint("unit_price > 0"), nullable=False)
    image_url = Column(String, nullable=True)

    # Alert thresholds
    reorder_point = Column(Integer, CheckConstraint("reorder_point > 0"), nullable=False, default=10)
    optimal_stock = Column(Integer, CheckConstraint("optimal_stock > 0"), nullable=False, default=50)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    inventory_items = relationship("InventoryItem", back_populates="product")
