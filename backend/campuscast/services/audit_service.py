from typing import Optional, Dict, Any
from sqlalchemy.orm import Session
from fastapi import Request
from ..core.security import Actor
from ..models.audit_log import AuditLog
from ..models.course import Course
from ..models.podcast import Podcast
from ..models.user import User
import logging

logger = logging.getLogger(__name__)


class AuditService:
    @staticmethod
    def log_action(
        db: Session,
        actor: Optional[Actor],
        action: str,
        target: Optional[str] = None,
        target_name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        request: Optional[Request] = None
    ):
        """Log an action to the audit log"""
        try:
            if actor:
                actor_id = actor.id
                actor_name = actor.name or f"user:{actor.id}"
                actor_role = actor.role.value
            else:
                actor_id = None
                actor_name = "System"
                actor_role = "system"

            ip_address = None
            user_agent = None
            if request:
                ip_address = request.client.host if request.client else None
                user_agent = request.headers.get("User-Agent")

            audit_log = AuditLog(
                actor_id=actor_id,
                actor_name=actor_name,
                actor_role=actor_role,
                action=action,
                target=target,
                target_name=target_name,
                details=details,
                ip_address=ip_address,
                user_agent=user_agent
            )

            db.add(audit_log)
            db.commit()

        except Exception as e:
            # Don't let audit logging failures break the main operation
            logger.error(f"Failed to create audit log: {e}")
            db.rollback()

    @staticmethod
    def log_login(db: Session, actor: Actor, request: Request):
        AuditService.log_action(db=db, actor=actor, action="LOGIN", request=request)

    @staticmethod
    def log_user_registered(db: Session, actor: Actor, request: Request):
        AuditService.log_action(
            db=db,
            actor=actor,
            action="USER_REGISTERED",
            target=f"user:{actor.id}",
            target_name=actor.name,
            details={"role": actor.role.value},
            request=request
        )

    @staticmethod
    def log_session_started(db: Session, actor: Actor, podcast: Podcast, request: Optional[Request] = None):
        """Log a live session going live"""
        AuditService.log_action(
            db=db,
            actor=actor,
            action="SESSION_STARTED",
            target=f"podcast:{podcast.id}",
            target_name=podcast.title,
            details={"course_id": podcast.course_id},
            request=request
        )

    @staticmethod
    def log_session_ended(db: Session, actor: Actor, podcast: Podcast, request: Optional[Request] = None):
        """Log a live session being ended"""
        AuditService.log_action(
            db=db,
            actor=actor,
            action="SESSION_ENDED",
            target=f"podcast:{podcast.id}",
            target_name=podcast.title,
            details={
                "course_id": podcast.course_id,
                "started_at": podcast.start_time.isoformat() if podcast.start_time else None,
            },
            request=request
        )

    @staticmethod
    def log_podcast_action(db: Session, actor: Actor, action: str, podcast: Podcast, request: Optional[Request] = None):
        """Log a podcast upload or deletion"""
        action_map = {
            "upload": "PODCAST_UPLOADED",
            "delete": "PODCAST_DELETED"
        }

        AuditService.log_action(
            db=db,
            actor=actor,
            action=action_map.get(action, f"PODCAST_{action.upper()}"),
            target=f"podcast:{podcast.id}",
            target_name=podcast.title,
            details={"course_id": podcast.course_id, "storage_path": podcast.storage_path},
            request=request
        )

    @staticmethod
    def log_course_action(db: Session, actor: Actor, action: str, course: Course, request: Optional[Request] = None):
        """Log a course being created, updated or deleted"""
        AuditService.log_action(
            db=db,
            actor=actor,
            action=f"COURSE_{action.upper()}",
            target=f"course:{course.id}",
            target_name=course.code,
            details={"title": course.title, "lecturer_id": course.lecturer_id},
            request=request
        )

    @staticmethod
    def log_enrollment(
        db: Session,
        actor: Actor,
        course_id: int,
        user_id: int,
        enrolled: bool,
        request: Optional[Request] = None
    ):
        AuditService.log_action(
            db=db,
            actor=actor,
            action="USER_ENROLLED" if enrolled else "USER_UNENROLLED",
            target=f"course:{course_id}",
            details={"user_id": user_id},
            request=request
        )

    @staticmethod
    def log_user_action(db: Session, actor: Actor, action: str, user: User, request: Optional[Request] = None):
        """Log an admin creating, updating or deleting an account"""
        AuditService.log_action(
            db=db,
            actor=actor,
            action=f"USER_{action.upper()}",
            target=f"user:{user.id}",
            target_name=user.email,
            details={"role": user.role.value if user.role else None},
            request=request
        )
