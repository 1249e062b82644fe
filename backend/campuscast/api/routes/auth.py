from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.security import Actor
from ...schemas.auth import LoginRequest, RegisterRequest, TokenResponse
from ...services.auth_service import AuthService
from ...services.audit_service import AuditService

router = APIRouter()


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    data: RegisterRequest,
    request: Request,
    db: Session = Depends(get_db)
):
    """Create an account and return an access token"""
    auth_service = AuthService(db)
    user = auth_service.register(data)
    AuditService.log_user_registered(db, Actor.from_user(user), request)
    return auth_service.create_tokens(user)


@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: LoginRequest,
    request: Request,
    db: Session = Depends(get_db)
):
    """Exchange email and password for an access token"""
    auth_service = AuthService(db)
    user = auth_service.authenticate(login_data)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    AuditService.log_login(db, Actor.from_user(user), request)
    return auth_service.create_tokens(user)
