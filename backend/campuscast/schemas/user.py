from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from ..models.user import UserRole


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    role: UserRole
    department: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserCreate(BaseModel):
    """Account created by an admin; unlike self-registration any role is allowed"""
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str = Field(min_length=6)
    role: UserRole = UserRole.student
    department: Optional[str] = None


class UserUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[str] = Field(default=None, min_length=3)
    department: Optional[str] = None
    role: Optional[UserRole] = None  # honoured for admins only
