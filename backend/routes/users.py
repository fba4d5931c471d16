# backend/routes/users.py
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from database import get_db
from models.users import User, UserRole
from schemas.user import RoleUpdate, UserPage, UserResponse
from utils.audit import client_ip, write_log
from utils.errors import NotFound
from utils.tokenJWT import require_admin

router = APIRouter(prefix="/users", tags=["Users"])


# Retrieve a list of users with filtering, sorting, and pagination (Admin only)
@router.get("", response_model=UserPage)
def list_users(
    q: Optional[str] = Query(None, description="Search by email"),
    role: Optional[UserRole] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    sort_by: Literal["email", "role", "full_name", "created_at"] = "created_at",
    order: Literal["asc", "desc"] = "desc",
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    query = db.query(User)

    if q:
        query = query.filter(User.email.ilike(f"%{q.lower()}%"))
    if role:
        query = query.filter(User.role == role)

    sort_map = {
        "email": User.email,
        "role": User.role,
        "full_name": User.full_name,
        "created_at": User.created_at,
    }
    col = sort_map.get(sort_by, User.created_at)
    query = query.order_by(col.asc() if order == "asc" else col.desc())

    total = query.count()
    users = query.offset((page - 1) * page_size).limit(page_size).all()

    return {"items": users, "total": total, "page": page, "page_size": page_size}


# Update user role (Admin only)
@router.put("/{user_id}/role", response_model=UserResponse)
def update_user_role(
    user_id: UUID,
    payload: RoleUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    user = db.get(User, user_id)
    if not user:
        raise NotFound("User not found", user_id=str(user_id))

    # An admin cannot demote themselves and lock the system out
    if user.id == current_user.id and payload.role != UserRole.ADMIN:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot change your own role")

    previous = user.role
    user.role = payload.role
    db.commit()
    db.refresh(user)

    write_log(
        db, user_id=current_user.id, action="ROLE_UPDATE", resource="users", status="SUCCESS",
        ip=client_ip(request),
        meta={"target_user_id": str(user.id), "from": previous.value, "to": user.role.value},
    )
    return user
