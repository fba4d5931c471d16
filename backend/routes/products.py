# backend/routes/products.py
from typing import List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from database import get_db
from models.inventory import InventoryItem
from models.product import Product
from models.users import User
import schemas.product as product_schemas
from utils.audit import client_ip, write_log
from utils.errors import Conflict, NotFound
from utils.tokenJWT import get_current_user, require_admin, require_manager

router = APIRouter(prefix="/products", tags=["Products"])

SEARCH_LIMIT = 10


# ---- HELPERS ----
def _norm_sku(sku: Optional[str]) -> Optional[str]:
    if sku is None:
        return None
    return sku.strip().upper() or None


def _get_product(db: Session, product_id: UUID) -> Product:
    product = db.get(Product, product_id)
    if not product:
        raise NotFound("Product not found", product_id=str(product_id))
    return product


def _ensure_sku_free(db: Session, sku: str, exclude_id: Optional[UUID] = None) -> None:
    query = db.query(Product).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise Conflict("Product with this SKU already exists", sku=sku)


# =========================
# PRODUCT LIST
# =========================
@router.get("", response_model=product_schemas.ProductListPage)
def list_products(
    search: Optional[str] = Query(None, description="Name, SKU or description"),
    category: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    sort_by: Literal["name", "sku", "unit_price", "created_at"] = "created_at",
    order: Literal["asc", "desc"] = "desc",
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Product)

    if search:
        like = f"%{search}%"
        query = query.filter(or_(
            Product.name.ilike(like),
            Product.sku.ilike(like),
            Product.description.ilike(like),
        ))
    if category:
        query = query.filter(Product.category == category)

    sort_map = {
        "name": Product.name,
        "sku": Product.sku,
        "unit_price": Product.unit_price,
        "created_at": Product.created_at,
    }
    col = sort_map.get(sort_by, Product.created_at)
    query = query.order_by(col.asc() if order == "asc" else col.desc())

    total = query.count()
    items = query.offset((page - 1) * page_size).limit(page_size).all()

    return {"items": items, "total": total, "page": page, "page_size": page_size}


# =========================
# LOOKUPS
# =========================
@router.get("/search", response_model=List[product_schemas.ProductResponse])
def search_products(
    q: str = Query(..., min_length=2),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    like = f"%{q}%"
    return (
        db.query(Product)
        .filter(or_(Product.name.ilike(like), Product.sku.ilike(like)))
        .order_by(Product.name.asc())
        .limit(SEARCH_LIMIT)
        .all()
    )


@router.get("/categories", response_model=List[product_schemas.CategoryCount])
def get_categories(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    rows = (
        db.query(Product.category, func.count(Product.id))
        .filter(Product.category.isnot(None), Product.category != "")
        .group_by(Product.category)
        .order_by(Product.category.asc())
        .all()
    )
    return [{"category": category, "count": count} for category, count in rows]


# =========================
# SINGLE PRODUCT
# =========================
@router.get("/{product_id}", response_model=product_schemas.ProductResponse)
def get_product(
    product_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _get_product(db, product_id)


@router.post("", response_model=product_schemas.ProductResponse, status_code=201)
def create_product(
    payload: product_schemas.ProductCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    data = payload.model_dump()
    data["sku"] = _norm_sku(data["sku"])
    _ensure_sku_free(db, data["sku"])

    product = Product(**data)
    db.add(product)
    db.commit()
    db.refresh(product)

    write_log(
        db, user_id=current_user.id, action="PRODUCT_CREATE", resource="products",
        status="SUCCESS", ip=client_ip(request), meta={"id": str(product.id), "sku": product.sku},
    )
    return product


# Partial update: only the fields sent in the body are applied
@router.put("/{product_id}", response_model=product_schemas.ProductResponse)
def update_product(
    product_id: UUID,
    payload: product_schemas.ProductUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    product = _get_product(db, product_id)

    changes = payload.model_dump(exclude_unset=True)
    if "sku" in changes:
        changes["sku"] = _norm_sku(changes["sku"])
        if changes["sku"] is None:
            changes.pop("sku")
        else:
            _ensure_sku_free(db, changes["sku"], exclude_id=product.id)

    for key, value in changes.items():
        setattr(product, key, value)

    db.commit()
    db.refresh(product)

    write_log(
        db, user_id=current_user.id, action="PRODUCT_UPDATE", resource="products",
        status="SUCCESS", ip=client_ip(request),
        meta={"id": str(product.id), "fields": sorted(changes)},
    )
    return product


# =========================
# DELETE
# =========================
@router.delete("/{product_id}")
def delete_product(
    product_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    product = _get_product(db, product_id)

    stocked = db.query(InventoryItem.id).filter(InventoryItem.product_id == product.id).first()
    if stocked:
        raise Conflict("Cannot delete product with existing inventory", product_id=str(product.id))

    pid, pname = product.id, product.name
    db.delete(product)
    db.commit()

    write_log(
        db, user_id=current_user.id, action="PRODUCT_DELETE", resource="products",
        status="SUCCESS", ip=client_ip(request), meta={"id": str(pid)},
    )
    return {"detail": f"Product '{pname}' deleted"}
