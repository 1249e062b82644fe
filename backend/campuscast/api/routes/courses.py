"""
Course endpoints: CRUD, enrollments, access checks, UI capabilities and going live
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status, Request
from sqlalchemy.orm import Session
import logging

from ...core.change_feed import ChangeFeed
from ...core.database import get_db
from ...core.exceptions import CampusCastError
from ...core.security import Actor, get_current_actor
from ...schemas.course import (
    CourseAccessResponse,
    CourseCapabilitiesResponse,
    CourseCreate,
    CourseResponse,
    CourseUpdate,
    EnrollmentResponse
)
from ...schemas.session import SessionResponse
from ...services.audit_service import AuditService
from ...services.course_service import CourseService
from ...services.live_session_service import LiveSessionService
from ...services.permission_service import PermissionService, CourseAction
from ...services.storage_service import StorageService
from ..deps import get_change_feed, get_storage, to_http_exception

router = APIRouter()
logger = logging.getLogger(__name__)


def _get_course_or_404(permission_service: PermissionService, course_id: int):
    course = permission_service.get_course(course_id)
    if not course:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Course not found"
        )
    return course


@router.get("/{course_id}/access", response_model=CourseAccessResponse)
async def check_course_access(
    course_id: int,
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Whether the current user may view the course's podcasts"""
    permission_service = PermissionService(db)
    course = _get_course_or_404(permission_service, course_id)
    decision = permission_service.check(current_actor, course, CourseAction.view)
    return CourseAccessResponse(course_id=course_id, has_access=decision.allowed)


@router.get("/{course_id}/capabilities", response_model=CourseCapabilitiesResponse)
async def get_course_capabilities(
    course_id: int,
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Actions available to the current user; clients hide the rest"""
    permission_service = PermissionService(db)
    course = _get_course_or_404(permission_service, course_id)
    return CourseCapabilitiesResponse(
        course_id=course_id,
        **permission_service.get_capabilities(current_actor, course)
    )


@router.get("/{course_id}/live", response_model=Optional[SessionResponse])
async def get_course_live_session(
    course_id: int,
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Current live session of a course, or null"""
    permission_service = PermissionService(db)
    course = _get_course_or_404(permission_service, course_id)
    if not permission_service.check(current_actor, course, CourseAction.view):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this course")

    try:
        return LiveSessionService(db).get_live_session(course_id)
    except CampusCastError as e:
        raise to_http_exception(e)


@router.post("/{course_id}/live", response_model=SessionResponse)
async def start_live_session(
    course_id: int,
    request: Request,
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    change_feed: ChangeFeed = Depends(get_change_feed)
):
    """Go live on a course; joins the running session if there is one"""
    service = LiveSessionService(db, change_feed)
    try:
        podcast = await service.start_session(course_id, current_actor)
    except CampusCastError as e:
        raise to_http_exception(e)

    if service.created:
        AuditService.log_session_started(db, current_actor, podcast, request)
    return podcast


@router.get("", response_model=List[CourseResponse])
async def list_courses(
    department: Optional[str] = Query(None),
    lecturer_id: Optional[int] = Query(None),
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Courses visible to the current user; students only see their enrollments"""
    return CourseService(db).list_courses(current_actor, department=department, lecturer_id=lecturer_id)


@router.post("", response_model=CourseResponse, status_code=status.HTTP_201_CREATED)
async def create_course(
    course_data: CourseCreate,
    request: Request,
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Create a course (admin or lecturer)"""
    try:
        course = CourseService(db).create_course(course_data, current_actor)
    except CampusCastError as e:
        raise to_http_exception(e)

    AuditService.log_course_action(db, current_actor, "created", course, request)
    return course


@router.get("/{course_id}", response_model=CourseResponse)
async def get_course(
    course_id: int,
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    try:
        return CourseService(db).get_course(course_id, current_actor)
    except CampusCastError as e:
        raise to_http_exception(e)


@router.put("/{course_id}", response_model=CourseResponse)
async def update_course(
    course_id: int,
    course_data: CourseUpdate,
    request: Request,
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Update a course (admin or its lecturer)"""
    try:
        course = CourseService(db).update_course(course_id, course_data, current_actor)
    except CampusCastError as e:
        raise to_http_exception(e)

    AuditService.log_course_action(db, current_actor, "updated", course, request)
    return course


@router.delete("/{course_id}")
async def delete_course(
    course_id: int,
    request: Request,
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    storage: Optional[StorageService] = Depends(get_storage)
):
    """Delete a course with its enrollments and podcasts (admin only)"""
    try:
        course = await CourseService(db, storage).delete_course(course_id, current_actor)
    except CampusCastError as e:
        raise to_http_exception(e)

    AuditService.log_course_action(db, current_actor, "deleted", course, request)
    return {"success": True, "message": "Course deleted successfully"}


@router.post("/{course_id}/enrollments/{user_id}", response_model=EnrollmentResponse)
async def enroll_user(
    course_id: int,
    user_id: int,
    request: Request,
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    try:
        enrollment = CourseService(db).enroll(course_id, user_id, current_actor)
    except CampusCastError as e:
        raise to_http_exception(e)

    AuditService.log_enrollment(db, current_actor, course_id, user_id, True, request)
    return enrollment


@router.delete("/{course_id}/enrollments/{user_id}")
async def unenroll_user(
    course_id: int,
    user_id: int,
    request: Request,
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    try:
        CourseService(db).unenroll(course_id, user_id, current_actor)
    except CampusCastError as e:
        raise to_http_exception(e)

    AuditService.log_enrollment(db, current_actor, course_id, user_id, False, request)
    return {"success": True, "message": "User removed from course"}
