# backend/models/inventory.py
import uuid

from sqlalchemy import (
    CheckConstraint, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid, func
)
from sqlalchemy.orm import relationship
from database import Base


# On-hand quantity of one product at one warehouse
class InventoryItem(Base):
    __tablename__ = "inventory"
    __table_args__ = (
        UniqueConstraint("warehouse_id", "product_id", name="uq_inventory_warehouse_product"),
        CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    warehouse_id = Column(Uuid, ForeignKey("warehouses.id"), nullable=False, index=True)
    product_id = Column(Uuid, ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=0)
    location_in_warehouse = Column(String, nullable=True)
    last_updated = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    product = relationship("Product", back_populates="inventory_items", lazy="joined")
    warehouse = relationship("Warehouse", back_populates="inventory_items", lazy="joined")
    movements = relationship("StockMovement", back_populates="inventory")
    alerts = relationship("Alert", back_populates="inventory")
