# backend/routes/auth.py
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from config import Settings
from database import get_db
from models.users import User, UserRole
from schemas import user as schemas
from utils.audit import client_ip, write_log
from utils.errors import Conflict
from utils.hashing import get_password_hash, verify_password
from utils.tokenJWT import create_access_token, get_app_settings, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


def _issue_token(user: User, settings: Settings) -> str:
    return create_access_token(data={"sub": str(user.id), "role": user.role.value}, settings=settings)


# Register a new user; self-registered accounts start as VIEWER
@router.post("/register", response_model=schemas.AuthResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: schemas.UserCreate,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    normalized_email = payload.email.strip().lower()

    existing = db.query(User).filter(func.lower(User.email) == normalized_email).first()
    if existing:
        write_log(
            db, user_id=None, action="REGISTER", resource="auth", status="FAIL",
            ip=client_ip(request), meta={"email": normalized_email, "reason": "Email exists"},
        )
        raise Conflict("Email already registered", email=normalized_email)

    user = User(
        email=normalized_email,
        password_hash=get_password_hash(payload.password),
        full_name=payload.full_name,
        role=UserRole.VIEWER,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    write_log(
        db, user_id=user.id, action="REGISTER", resource="auth", status="SUCCESS",
        ip=client_ip(request), meta={"email": user.email},
    )
    logger.info("auth.register", extra={"user_id": str(user.id)})
    return {"access_token": _issue_token(user, settings), "token_type": "bearer", "user": user}


# Authenticate user and issue JWT token
@router.post("/login", response_model=schemas.AuthResponse)
def login(
    payload: schemas.UserLogin,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    user = db.query(User).filter(func.lower(User.email) == payload.email.strip().lower()).first()

    if not user or not user.is_active or not verify_password(payload.password, user.password_hash):
        write_log(
            db, user_id=(user.id if user else None), action="LOGIN", resource="auth",
            status="FAIL", ip=client_ip(request), meta={"email": payload.email},
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    user.last_login = datetime.now(timezone.utc)
    db.commit()
    db.refresh(user)

    write_log(
        db, user_id=user.id, action="LOGIN", resource="auth", status="SUCCESS",
        ip=client_ip(request), meta={"email": user.email},
    )
    return {"access_token": _issue_token(user, settings), "token_type": "bearer", "user": user}


# Retrieve current authenticated user details
@router.get("/me", response_model=schemas.UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return current_user


# Tokens are stateless; logout only records the event
@router.post("/logout")
def logout(
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    write_log(
        db, user_id=current_user.id, action="LOGOUT", resource="auth", status="SUCCESS",
        ip=client_ip(request),
    )
    return {"message": "Logged out successfully"}
