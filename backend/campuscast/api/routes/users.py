"""
User management endpoints
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.exceptions import CampusCastError
from ...core.security import Actor, get_current_actor
from ...models.user import UserRole
from ...schemas.user import UserCreate, UserResponse, UserUpdate
from ...services.audit_service import AuditService
from ...services.user_service import UserService
from ..deps import get_current_admin, to_http_exception

router = APIRouter()


def parse_roles(role: Optional[str]) -> Optional[List[UserRole]]:
    """Comma separated role filter, e.g. "student,course_rep" """
    if not role:
        return None
    try:
        return [UserRole(value.strip()) for value in role.split(",") if value.strip()]
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown role filter: {role}"
        )


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Get current user information"""
    user = UserService(db).get_user_by_id(current_actor.id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.get("", response_model=List[UserResponse])
async def list_users(
    role: Optional[str] = Query(None),
    department: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Filter users by role(s), department or a name/email search"""
    try:
        return UserService(db).list_users(
            current_actor,
            roles=parse_roles(role),
            department=department,
            search=search
        )
    except CampusCastError as e:
        raise to_http_exception(e)


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    request: Request,
    current_actor: Actor = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """Create an account with any role (admin only)"""
    try:
        user = UserService(db).create_user(user_data)
    except CampusCastError as e:
        raise to_http_exception(e)

    AuditService.log_user_action(db, current_actor, "created", user, request)
    return user


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    try:
        return UserService(db).get_user(user_id, current_actor)
    except CampusCastError as e:
        raise to_http_exception(e)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    user_data: UserUpdate,
    request: Request,
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Update a profile; only admins may change roles"""
    try:
        user = UserService(db).update_user(user_id, user_data, current_actor)
    except CampusCastError as e:
        raise to_http_exception(e)

    AuditService.log_user_action(db, current_actor, "updated", user, request)
    return user


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    request: Request,
    current_actor: Actor = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    try:
        user = UserService(db).delete_user(user_id, current_actor)
    except CampusCastError as e:
        raise to_http_exception(e)

    AuditService.log_user_action(db, current_actor, "deleted", user, request)
    return {"success": True, "message": "User deleted successfully"}
