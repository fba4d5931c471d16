# backend/models/alert.py
import enum
import uuid

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, String, Uuid, func
from sqlalchemy.orm import relationship
from database import Base


class AlertType(str, enum.Enum):
    LOW_STOCK = "low_stock"
    OVERSTOCK = "overstock"
    EXPIRY = "expiry"
    THEFT = "theft"


class AlertSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Ordering used when listing unresolved alerts, most urgent first
SEVERITY_RANK = {
    AlertSeverity.CRITICAL: 4,
    AlertSeverity.HIGH: 3,
    AlertSeverity.MEDIUM: 2,
    AlertSeverity.LOW: 1,
}


def _values(enum_cls):
    return [m.value for m in enum_cls]


# Notification that an inventory row crossed a threshold.
# resolved_at / resolved_by stay NULL while is_resolved is False.
class Alert(Base):
    __tablename__ = "alerts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    type = Column(Enum(AlertType, values_callable=_values), nullable=False, index=True)
    severity = Column(Enum(AlertSeverity, values_callable=_values), nullable=False, index=True)
    message = Column(String, nullable=False)
    inventory_id = Column(Uuid, ForeignKey("inventory.id"), nullable=True, index=True)
    warehouse_id = Column(Uuid, ForeignKey("warehouses.id"), nullable=True, index=True)

    is_resolved = Column(Boolean, nullable=False, default=False, index=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    inventory = relationship("InventoryItem", back_populates="alerts")
    resolver = relationship("User", foreign_keys=[resolved_by])
