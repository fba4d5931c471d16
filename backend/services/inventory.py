# backend/services/inventory.py
"""
Stock adjustments: the only code path that changes InventoryItem.quantity.

Usage:
    processor = StockAdjustmentProcessor(database, events)
    item = processor.adjust(product_id, warehouse_id, 5, "incoming",
                            reason="Delivery", acting_user_id=user.id)

Each call is one transaction covering the inventory row, its StockMovement and
any Alert rows it raises. Calls for the same (product, warehouse) pair are
serialized: the row is read with SELECT ... FOR UPDATE and, for backends that
ignore row locks (SQLite), under a per-pair lock held by the Database handle.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple, Union
from uuid import UUID

from fastapi import Request
from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, lazyload

from database import Database
from models.alert import Alert, AlertSeverity, AlertType
from models.inventory import InventoryItem
from models.product import Product
from models.stock import MovementType, StockMovement
from models.warehouse import Warehouse
from services.events import ALERT_CREATED, INVENTORY_UPDATED, EventBus
from utils.errors import InsufficientStock, NotFound, ValidationFailed
from utils.ids import as_uuid

logger = logging.getLogger(__name__)

# Overstock fires above optimal_stock * OVERSTOCK_FACTOR
OVERSTOCK_FACTOR = 1.5

# A first insert for a pair can lose a race against another transaction
# inserting the same pair; the loser re-reads the winner's row once.
_INSERT_ATTEMPTS = 2

TriggeredAlert = Tuple[AlertType, AlertSeverity, str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def low_stock_condition():
    """SQL predicate: quantity at or below the product's reorder point."""
    return InventoryItem.quantity <= Product.reorder_point


def overstock_condition():
    """SQL predicate: quantity above optimal_stock * OVERSTOCK_FACTOR."""
    return InventoryItem.quantity > Product.optimal_stock * OVERSTOCK_FACTOR


def validate_adjustment(quantity, movement_type) -> MovementType:
    # bool is an int subclass; True must not pass as 1
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationFailed("quantity must be an integer", field="quantity")
    if quantity < 0:
        raise ValidationFailed("quantity must be non-negative", field="quantity")
    try:
        return MovementType(movement_type)
    except ValueError:
        raise ValidationFailed(
            f"Unknown movement type: {movement_type!r}", field="movement_type",
        )


def compute_new_quantity(previous: int, quantity: int, movement_type: MovementType) -> int:
    if movement_type == MovementType.INCOMING:
        return previous + quantity
    if movement_type == MovementType.OUTGOING:
        new_quantity = previous - quantity
        if new_quantity < 0:
            raise InsufficientStock(available=previous, requested=quantity)
        return new_quantity
    # adjustment sets the absolute level
    return quantity


def evaluate_alerts(product: Product, previous: int, new_quantity: int) -> List[TriggeredAlert]:
    """
    Low stock is edge-triggered: it fires only when the quantity crosses down
    to the reorder point. Overstock is level-triggered: it fires on every
    adjustment that leaves the quantity above the threshold.
    """
    triggered: List[TriggeredAlert] = []
    reorder_point = product.reorder_point

    if new_quantity <= reorder_point and previous > reorder_point:
        severity = AlertSeverity.HIGH if new_quantity <= reorder_point / 2 else AlertSeverity.MEDIUM
        triggered.append((
            AlertType.LOW_STOCK,
            severity,
            f"Low stock alert for {product.name}. Current: {new_quantity}, "
            f"Reorder point: {reorder_point}",
        ))

    if new_quantity > product.optimal_stock * OVERSTOCK_FACTOR:
        triggered.append((
            AlertType.OVERSTOCK,
            AlertSeverity.MEDIUM,
            f"Overstock alert for {product.name}. Current: {new_quantity}, "
            f"Optimal: {product.optimal_stock}",
        ))

    return triggered


class StockAdjustmentProcessor:
    """Applies stock movements and derives alerts from the result."""

    def __init__(self, database: Database, events: Optional[EventBus] = None):
        self.database = database
        self.events = events

    def adjust(
        self,
        product_id: Union[UUID, str],
        warehouse_id: Union[UUID, str],
        quantity: int,
        movement_type: Union[MovementType, str],
        reason: Optional[str] = None,
        location: Optional[str] = None,
        acting_user_id: Union[UUID, str, None] = None,
    ) -> InventoryItem:
        """
        Apply one movement and return the updated inventory row (detached).

        Raises:
            ValidationFailed: malformed quantity, movement type or ids
            NotFound: unknown product, unknown or inactive warehouse
            InsufficientStock: outgoing movement larger than the stock on hand
        """
        movement_type = validate_adjustment(quantity, movement_type)
        if acting_user_id is None:
            raise ValidationFailed("acting_user_id is required", field="acting_user_id")
        product_id = as_uuid(product_id, "product_id")
        warehouse_id = as_uuid(warehouse_id, "warehouse_id")
        acting_user_id = as_uuid(acting_user_id, "acting_user_id")

        with self.database.locks.hold((product_id, warehouse_id)):
            for attempt in range(1, _INSERT_ATTEMPTS + 1):
                db = self.database.session()
                try:
                    item, alerts = self._apply(
                        db, product_id, warehouse_id, quantity, movement_type,
                        reason, location, acting_user_id,
                    )
                    db.commit()
                    break
                except IntegrityError:
                    db.rollback()
                    if attempt == _INSERT_ATTEMPTS:
                        raise
                    logger.warning(
                        "stock.adjust.insert_race",
                        extra={"product_id": str(product_id), "warehouse_id": str(warehouse_id)},
                    )
                except Exception:
                    db.rollback()
                    raise
                finally:
                    db.close()

        logger.info(
            "stock.adjust",
            extra={
                "inventory_id": str(item.id),
                "movement_type": movement_type.value,
                "qty": quantity,
                "new_quantity": item.quantity,
                "alerts": len(alerts),
            },
        )
        self._publish(item, alerts)
        return item

    def _lock_item(self, db: Session, product_id: UUID, warehouse_id: UUID) -> Optional[InventoryItem]:
        # Joined eager loads would put the locked row on the nullable side of
        # an outer join, which PostgreSQL refuses; load the bare row here.
        return (
            db.query(InventoryItem)
            .options(lazyload("*"))
            .filter(and_(
                InventoryItem.product_id == product_id,
                InventoryItem.warehouse_id == warehouse_id,
            ))
            .with_for_update()
            .first()
        )

    def _apply(
        self, db: Session, product_id: UUID, warehouse_id: UUID, quantity: int,
        movement_type: MovementType, reason: Optional[str], location: Optional[str],
        acting_user_id: UUID,
    ) -> Tuple[InventoryItem, List[Alert]]:
        product = db.get(Product, product_id)
        if product is None:
            raise NotFound("Product not found", product_id=str(product_id))
        warehouse = db.get(Warehouse, warehouse_id)
        if warehouse is None or not warehouse.is_active:
            raise NotFound("Warehouse not found", warehouse_id=str(warehouse_id))

        item = self._lock_item(db, product_id, warehouse_id)
        previous = item.quantity if item is not None else 0

        # Rejections happen before the first write
        new_quantity = compute_new_quantity(previous, quantity, movement_type)

        now = _utcnow()
        if item is None:
            item = InventoryItem(
                id=uuid.uuid4(),
                product_id=product_id,
                warehouse_id=warehouse_id,
                quantity=new_quantity,
                location_in_warehouse=location,
                last_updated=now,
            )
            db.add(item)
            # UNIQUE(warehouse_id, product_id) surfaces a concurrent first insert here
            db.flush()
        else:
            item.quantity = new_quantity
            item.last_updated = now
            if location is not None:
                item.location_in_warehouse = location

        db.add(StockMovement(
            inventory_id=item.id,
            movement_type=movement_type,
            quantity_change=abs(quantity),
            previous_quantity=previous,
            new_quantity=new_quantity,
            reason=reason,
            user_id=acting_user_id,
            created_at=now,
        ))

        alerts = []
        for alert_type, severity, message in evaluate_alerts(product, previous, new_quantity):
            alert = Alert(
                id=uuid.uuid4(),
                type=alert_type,
                severity=severity,
                message=message,
                inventory_id=item.id,
                warehouse_id=warehouse_id,
                is_resolved=False,
                created_at=now,
            )
            db.add(alert)
            alerts.append(alert)
            logger.warning(
                "stock.alert.created",
                extra={
                    "alert_type": alert_type.value,
                    "severity": severity.value,
                    "inventory_id": str(item.id),
                    "quantity": new_quantity,
                },
            )

        # Keep the references usable after the session closes
        item.product = product
        item.warehouse = warehouse
        return item, alerts

    def _publish(self, item: InventoryItem, alerts: List[Alert]) -> None:
        if self.events is None:
            return
        self.events.publish(INVENTORY_UPDATED, {
            "inventory_id": str(item.id),
            "warehouse_id": str(item.warehouse_id),
            "product_id": str(item.product_id),
            "quantity": item.quantity,
        })
        for alert in alerts:
            self.events.publish(ALERT_CREATED, {
                "alert_id": str(alert.id),
                "type": alert.type.value,
                "severity": alert.severity.value,
                "warehouse_id": str(alert.warehouse_id),
            })


def get_stock_processor(request: Request) -> StockAdjustmentProcessor:
    return request.app.state.stock_processor
