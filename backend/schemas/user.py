# backend/schemas/user.py
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from models.users import UserRole
from schemas.common import ORMBase


# Shared properties for user models
class UserBase(BaseModel):
    email: EmailStr


# Schema for user authentication credentials
class UserLogin(UserBase):
    password: str = Field(min_length=1)


# Schema for user registration requests
class UserCreate(UserBase):
    password: str = Field(min_length=6)
    full_name: Optional[str] = Field(default=None, max_length=255)


# Output schema for user profile details
class UserResponse(ORMBase):
    id: UUID
    email: str
    full_name: Optional[str] = None
    role: UserRole
    avatar_url: Optional[str] = None
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


# Compact user reference embedded in other resources
class UserRef(ORMBase):
    id: UUID
    email: str
    full_name: Optional[str] = None


# Schema for JWT authentication token response
class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


# Register / login response: profile plus token
class AuthResponse(Token):
    user: UserResponse


# Schema for administrative role updates
class RoleUpdate(BaseModel):
    role: UserRole


class UserPage(BaseModel):
    items: List[UserResponse]
    total: int
    page: int
    page_size: int
