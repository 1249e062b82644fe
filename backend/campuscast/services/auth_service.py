from datetime import timedelta
from typing import Optional
from sqlalchemy.orm import Session
from fastapi import HTTPException, status
import logging

from ..core.security import Actor, verify_password, get_password_hash, create_actor_token
from ..core.config import settings
from ..models.user import User, UserRole
from ..schemas.auth import LoginRequest, RegisterRequest, TokenResponse
from .user_service import UserService

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, db: Session):
        self.db = db
        self.user_service = UserService(db)

    def authenticate(self, login_data: LoginRequest) -> Optional[User]:
        user = self.user_service.get_user_by_email(login_data.email)

        if not user or not user.password_hash:
            return None
        if not verify_password(login_data.password, user.password_hash):
            return None
        return user

    def register(self, data: RegisterRequest) -> User:
        if data.role == UserRole.admin:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Admin accounts cannot be self-registered"
            )

        if self.user_service.get_user_by_email(data.email):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Email already registered"
            )

        user = User(
            name=data.name,
            email=data.email.lower(),
            password_hash=get_password_hash(data.password),
            role=data.role,
            department=data.department
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"Registered user {user.id} as {user.role.value}")
        return user

    def create_tokens(self, user: User) -> TokenResponse:
        access_token = create_actor_token(
            Actor.from_user(user),
            expires_delta=timedelta(minutes=settings.access_token_expire_minutes)
        )
        return TokenResponse(
            access_token=access_token,
            expires_in=settings.access_token_expire_minutes * 60
        )

    def create_initial_admin(self) -> User:
        """Create the initial admin user if it doesn't exist"""
        existing_admin = self.db.query(User).filter(
            User.role == UserRole.admin
        ).first()

        if existing_admin:
            return existing_admin

        admin_user = User(
            name="Administrator",
            email=settings.admin_email.lower(),
            password_hash=get_password_hash(settings.admin_password),
            role=UserRole.admin
        )

        self.db.add(admin_user)
        self.db.commit()
        self.db.refresh(admin_user)
        logger.info(f"Created initial admin {admin_user.email}")
        return admin_user
