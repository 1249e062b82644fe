from pydantic import BaseModel, Field
from typing import Optional
from ..models.user import UserRole


class LoginRequest(BaseModel):
    email: str
    password: str

    class Config:
        extra = "forbid"


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str = Field(min_length=6)
    role: UserRole = UserRole.student
    department: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
