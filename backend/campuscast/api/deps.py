"""
Request-scoped access to the handles owned by the application lifespan
"""
from typing import Optional
from fastapi import Depends, HTTPException, Request, status

from ..core.change_feed import ChangeFeed
from ..core.exceptions import CampusCastError, Conflict, NotFound, PermissionDenied, PersistenceError
from ..core.security import Actor, get_current_actor
from ..models.user import UserRole
from ..services.storage_service import StorageService


def get_change_feed(request: Request) -> ChangeFeed:
    return request.app.state.change_feed


def get_storage(request: Request) -> Optional[StorageService]:
    return getattr(request.app.state, "storage", None)


async def get_current_admin(current_actor: Actor = Depends(get_current_actor)) -> Actor:
    if current_actor.role != UserRole.admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_actor


def to_http_exception(error: CampusCastError) -> HTTPException:
    """Translate a service error; store failures get a generic message"""
    if isinstance(error, PermissionDenied):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permission denied")
    if isinstance(error, NotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error.message or "Not found")
    if isinstance(error, Conflict):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=error.message)
    if isinstance(error, PersistenceError):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Something went wrong, please try again"
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.message)
