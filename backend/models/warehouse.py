# backend/models/warehouse.py
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Uuid, func
from sqlalchemy.orm import relationship
from database import Base


# Physical storage site. Deleting a warehouse only clears is_active.
class Warehouse(Base):
    __tablename__ = "warehouses"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False, index=True)
    location = Column(String, nullable=True)
    capacity = Column(Integer, nullable=True)
    manager_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    manager = relationship("User", lazy="joined")
    inventory_items = relationship("InventoryItem", back_populates="warehouse")
