# backend/routes/inventory.py
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from uuid import UUID

import pandas as pd
from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from database import get_db
from models.inventory import InventoryItem
from models.product import Product
from models.stock import MovementType, StockMovement
from models.users import User
from schemas.filters import InventoryFilter, MovementFilter, build_filter
from schemas.inventory import AdjustStockRequest, InventoryItemResponse, InventoryPage
import schemas.stock as stock_schemas
from services.inventory import (
    StockAdjustmentProcessor, get_stock_processor, low_stock_condition, overstock_condition,
)
from utils.audit import client_ip, write_log
from utils.tokenJWT import get_current_user, require_manager

router = APIRouter(prefix="/inventory", tags=["Inventory"])

TRENDS_LIMIT = 50
EXPORT_COLUMNS = ["SKU", "Product", "Warehouse", "Quantity", "Location", "Last Updated"]


def _movement_out(m: StockMovement) -> dict:
    item = m.inventory
    data = stock_schemas.StockMovementResponse.model_validate(m).model_dump()
    if item is not None:
        data.update({
            "warehouse_id": item.warehouse_id,
            "product_id": item.product_id,
            "product_name": item.product.name if item.product else None,
            "product_sku": item.product.sku if item.product else None,
        })
    return data


def _page(query, page: int, page_size: int):
    total = query.count()
    items = query.offset((page - 1) * page_size).limit(page_size).all()
    return {"items": items, "total": total, "page": page, "page_size": page_size}


# =========================
# STOCK LEVELS
# =========================
@router.get("", response_model=InventoryPage)
def list_inventory(
    warehouse_id: Optional[UUID] = Query(None),
    product_id: Optional[UUID] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    filters = build_filter(InventoryFilter, warehouse_id=warehouse_id, product_id=product_id)
    query = filters.apply(db.query(InventoryItem)).order_by(InventoryItem.last_updated.desc())
    return _page(query, page, page_size)


@router.get("/low-stock", response_model=List[InventoryItemResponse])
def list_low_stock(
    warehouse_id: Optional[UUID] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    filters = build_filter(InventoryFilter, warehouse_id=warehouse_id)
    query = (
        db.query(InventoryItem)
        .join(Product, InventoryItem.product_id == Product.id)
        .filter(low_stock_condition())
    )
    return filters.apply(query).order_by(InventoryItem.quantity.asc()).all()


@router.get("/overstock", response_model=List[InventoryItemResponse])
def list_overstock(
    warehouse_id: Optional[UUID] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    filters = build_filter(InventoryFilter, warehouse_id=warehouse_id)
    query = (
        db.query(InventoryItem)
        .join(Product, InventoryItem.product_id == Product.id)
        .filter(overstock_condition())
    )
    return filters.apply(query).order_by(InventoryItem.quantity.desc()).all()


# =========================
# ADJUSTMENT
# =========================
@router.post("/adjust", response_model=InventoryItemResponse)
def adjust_stock(
    payload: AdjustStockRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
    processor: StockAdjustmentProcessor = Depends(get_stock_processor),
):
    item = processor.adjust(
        payload.product_id,
        payload.warehouse_id,
        payload.quantity,
        payload.movement_type,
        reason=payload.reason,
        location=payload.location,
        acting_user_id=current_user.id,
    )

    write_log(
        db, user_id=current_user.id, action="STOCK_ADJUSTMENT", resource="inventory",
        status="SUCCESS", ip=client_ip(request),
        meta={
            "inventory_id": str(item.id),
            "movement_type": payload.movement_type.value,
            "quantity": payload.quantity,
            "new_quantity": item.quantity,
        },
    )
    return item


# =========================
# MOVEMENT HISTORY
# =========================
@router.get("/movements", response_model=stock_schemas.StockMovementPage)
def list_movements(
    warehouse_id: Optional[UUID] = Query(None),
    product_id: Optional[UUID] = Query(None),
    movement_type: Optional[MovementType] = Query(None),
    date_from: Optional[str] = Query(None, description="YYYY-MM-DD"),
    date_to: Optional[str] = Query(None, description="YYYY-MM-DD"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    filters = build_filter(
        MovementFilter,
        warehouse_id=warehouse_id, product_id=product_id, movement_type=movement_type,
        date_from=date_from, date_to=date_to,
    )
    query = filters.apply(db.query(StockMovement)).order_by(StockMovement.created_at.desc())
    result = _page(query, page, page_size)
    result["items"] = [_movement_out(m) for m in result["items"]]
    return result


@router.get("/trends", response_model=List[stock_schemas.StockMovementResponse])
def get_trends(
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    since = datetime.now(timezone.utc) - timedelta(days=days)
    movements = (
        db.query(StockMovement)
        .filter(StockMovement.created_at >= since)
        .order_by(StockMovement.created_at.desc())
        .limit(TRENDS_LIMIT)
        .all()
    )
    return [_movement_out(m) for m in movements]


# =========================
# EXPORT
# =========================
@router.get("/export")
def export_inventory(
    request: Request,
    warehouse_id: Optional[UUID] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    filters = build_filter(InventoryFilter, warehouse_id=warehouse_id)
    items = filters.apply(db.query(InventoryItem)).order_by(InventoryItem.last_updated.desc()).all()

    rows = [
        [
            item.product.sku,
            item.product.name,
            item.warehouse.name,
            item.quantity,
            item.location_in_warehouse or "N/A",
            item.last_updated.date().isoformat() if item.last_updated else "",
        ]
        for item in items
    ]
    content = pd.DataFrame(rows, columns=EXPORT_COLUMNS).to_csv(index=False)

    write_log(
        db, user_id=current_user.id, action="INVENTORY_EXPORT", resource="inventory",
        status="SUCCESS", ip=client_ip(request), meta={"rows": len(rows)},
    )
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=inventory.csv"},
    )
