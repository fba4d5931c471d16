# backend/routes/warehouses.py
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from database import get_db
from models.inventory import InventoryItem
from models.product import Product
from models.users import User
from models.warehouse import Warehouse
from schemas.warehouse import (
    WarehouseCreate, WarehousePage, WarehouseResponse, WarehouseStats, WarehouseUpdate,
)
from services.inventory import low_stock_condition
from utils.audit import client_ip, write_log
from utils.errors import NotFound
from utils.tokenJWT import get_current_user, require_admin, require_manager

router = APIRouter(prefix="/warehouses", tags=["Warehouses"])


# Only active warehouses are visible; a soft-deleted one is a 404
def _get_active(db: Session, warehouse_id: UUID) -> Warehouse:
    warehouse = db.get(Warehouse, warehouse_id)
    if not warehouse or not warehouse.is_active:
        raise NotFound("Warehouse not found", warehouse_id=str(warehouse_id))
    return warehouse


def _ensure_manager(db: Session, manager_id: Optional[UUID]) -> None:
    if manager_id is not None and db.get(User, manager_id) is None:
        raise NotFound("Manager not found", manager_id=str(manager_id))


@router.get("", response_model=WarehousePage)
def list_warehouses(
    search: Optional[str] = Query(None, description="Name or location"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    sort_by: Literal["name", "location", "created_at"] = "created_at",
    order: Literal["asc", "desc"] = "desc",
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    q = db.query(Warehouse).filter(Warehouse.is_active.is_(True))

    if search:
        like = f"%{search}%"
        q = q.filter(or_(Warehouse.name.ilike(like), Warehouse.location.ilike(like)))

    sort_map = {
        "name": Warehouse.name,
        "location": Warehouse.location,
        "created_at": Warehouse.created_at,
    }
    col = sort_map.get(sort_by, Warehouse.created_at)
    q = q.order_by(col.asc() if order == "asc" else col.desc())

    total = q.count()
    items = q.offset((page - 1) * page_size).limit(page_size).all()
    return {"items": items, "total": total, "page": page, "page_size": page_size}


@router.get("/{warehouse_id}", response_model=WarehouseResponse)
def get_warehouse(
    warehouse_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _get_active(db, warehouse_id)


@router.get("/{warehouse_id}/stats", response_model=WarehouseStats)
def get_warehouse_stats(
    warehouse_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    warehouse = _get_active(db, warehouse_id)

    total_products, total_quantity = (
        db.query(func.count(InventoryItem.id), func.coalesce(func.sum(InventoryItem.quantity), 0))
        .filter(InventoryItem.warehouse_id == warehouse.id)
        .one()
    )
    low_stock_items = (
        db.query(func.count(InventoryItem.id))
        .join(Product, InventoryItem.product_id == Product.id)
        .filter(InventoryItem.warehouse_id == warehouse.id, low_stock_condition())
        .scalar()
    )
    utilization = round(total_quantity / warehouse.capacity * 100) if warehouse.capacity else 0

    return {
        "total_products": total_products,
        "total_quantity": int(total_quantity),
        "low_stock_items": low_stock_items or 0,
        "utilization": utilization,
    }


@router.post("", response_model=WarehouseResponse, status_code=201)
def create_warehouse(
    payload: WarehouseCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    _ensure_manager(db, payload.manager_id)

    warehouse = Warehouse(**payload.model_dump())
    db.add(warehouse)
    db.commit()
    db.refresh(warehouse)

    write_log(
        db, user_id=current_user.id, action="WAREHOUSE_CREATE", resource="warehouses",
        status="SUCCESS", ip=client_ip(request), meta={"id": str(warehouse.id), "name": warehouse.name},
    )
    return warehouse


@router.put("/{warehouse_id}", response_model=WarehouseResponse)
def update_warehouse(
    warehouse_id: UUID,
    payload: WarehouseUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    warehouse = _get_active(db, warehouse_id)

    changes = payload.model_dump(exclude_unset=True)
    if "manager_id" in changes:
        _ensure_manager(db, changes["manager_id"])
    for key, value in changes.items():
        setattr(warehouse, key, value)

    db.commit()
    db.refresh(warehouse)

    write_log(
        db, user_id=current_user.id, action="WAREHOUSE_UPDATE", resource="warehouses",
        status="SUCCESS", ip=client_ip(request),
        meta={"id": str(warehouse.id), "fields": sorted(changes)},
    )
    return warehouse


# Soft delete: inventory and history stay, the warehouse stops accepting movements
@router.delete("/{warehouse_id}")
def delete_warehouse(
    warehouse_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    warehouse = _get_active(db, warehouse_id)
    warehouse.is_active = False
    db.commit()

    write_log(
        db, user_id=current_user.id, action="WAREHOUSE_DELETE", resource="warehouses",
        status="SUCCESS", ip=client_ip(request), meta={"id": str(warehouse.id)},
    )
    return {"detail": f"Warehouse '{warehouse.name}' deactivated"}
