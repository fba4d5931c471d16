# backend/models/stock.py
import enum
import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, Enum, ForeignKey, Integer, String, Uuid, func
from sqlalchemy.orm import relationship
from database import Base


class MovementType(str, enum.Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"
    ADJUSTMENT = "adjustment"


# Immutable audit entry for one stock adjustment. Rows are only ever inserted.
class StockMovement(Base):
    __tablename__ = "stock_movements"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    inventory_id = Column(Uuid, ForeignKey("inventory.id"), nullable=False, index=True)
    movement_type = Column(
        Enum(MovementType, values_callable=lambda e: [m.value for m in e]), nullable=False
    )

    # Magnitude of the requested change, never negative
    quantity_change = Column(Integer, CheckConstraint("quantity_change >= 0"), nullable=False)
    previous_quantity = Column(Integer, nullable=False)
    new_quantity = Column(Integer, nullable=False)

    reason = Column(String, nullable=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    inventory = relationship("InventoryItem", back_populates="movements")
    user = relationship("User")
