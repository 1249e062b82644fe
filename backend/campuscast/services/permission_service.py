"""
Permission Service
Single capability check for course-scoped actions, shared by the lifecycle
service, the request handlers and the UI gating endpoint.
"""
from dataclasses import dataclass
from typing import Optional, Set
from sqlalchemy.orm import Session
import enum
import logging

from ..core.exceptions import PermissionDenied
from ..core.security import Actor
from ..models.course import Course, Enrollment
from ..models.user import UserRole

logger = logging.getLogger(__name__)


class CourseAction(enum.Enum):
    view = "view"
    start_live = "start_live"
    end_live = "end_live"
    upload = "upload"
    delete_podcast = "delete_podcast"
    edit_course = "edit_course"
    delete_course = "delete_course"


# Actions that change what a course broadcasts or stores
MANAGE_ACTIONS = {CourseAction.start_live, CourseAction.end_live, CourseAction.upload}


@dataclass(frozen=True)
class AuthorizationDecision:
    allowed: bool
    reason: str

    def __bool__(self) -> bool:
        return self.allowed


def authorize(
    actor: Actor,
    course: Course,
    action: CourseAction,
    enrolled: bool = False,
    recorded_by: Optional[int] = None
) -> AuthorizationDecision:
    """Decide whether actor may perform action on course"""
    if actor.role == UserRole.admin:
        return AuthorizationDecision(True, "admin")

    is_lecturer = actor.role == UserRole.lecturer and course.lecturer_id == actor.id
    is_course_rep = (
        actor.role == UserRole.course_rep
        and course.course_rep_id is not None
        and course.course_rep_id == actor.id
    )

    if action == CourseAction.view:
        if is_lecturer:
            return AuthorizationDecision(True, "lecturer of record")
        if is_course_rep:
            return AuthorizationDecision(True, "course representative")
        if enrolled:
            return AuthorizationDecision(True, "enrolled")
        return AuthorizationDecision(False, "not enrolled in course")

    if action in MANAGE_ACTIONS:
        if is_lecturer:
            return AuthorizationDecision(True, "lecturer of record")
        if is_course_rep:
            return AuthorizationDecision(True, "course representative")
        return AuthorizationDecision(False, f"{actor.role.value} may not {action.value} on this course")

    if action == CourseAction.delete_podcast:
        if is_lecturer:
            return AuthorizationDecision(True, "lecturer of record")
        # Course reps may only remove what they recorded
        if is_course_rep and recorded_by == actor.id:
            return AuthorizationDecision(True, "course representative and recorder")
        return AuthorizationDecision(False, "only the lecturer, an admin or the recording course rep may delete")

    if action == CourseAction.edit_course:
        if is_lecturer:
            return AuthorizationDecision(True, "lecturer of record")
        return AuthorizationDecision(False, "only the lecturer or an admin may edit the course")

    if action == CourseAction.delete_course:
        return AuthorizationDecision(False, "only an admin may delete a course")

    return AuthorizationDecision(False, "unknown action")


class PermissionService:
    """Service for course-scoped permission lookups"""

    def __init__(self, db: Session):
        self.db = db

    def get_course(self, course_id: int) -> Optional[Course]:
        return self.db.query(Course).filter(Course.id == course_id).first()

    def is_enrolled(self, user_id: int, course_id: int) -> bool:
        enrollment = self.db.query(Enrollment).filter(
            Enrollment.user_id == user_id,
            Enrollment.course_id == course_id
        ).first()
        return enrollment is not None

    def visible_course_ids(self, actor: Actor) -> Set[int]:
        """Courses a student or course rep may view: enrolled ones plus any they represent"""
        rows = self.db.query(Enrollment.course_id).filter(Enrollment.user_id == actor.id).all()
        course_ids = {row[0] for row in rows}
        if actor.role == UserRole.course_rep:
            rows = self.db.query(Course.id).filter(Course.course_rep_id == actor.id).all()
            course_ids.update(row[0] for row in rows)
        return course_ids

    def check(
        self,
        actor: Actor,
        course: Course,
        action: CourseAction,
        recorded_by: Optional[int] = None
    ) -> AuthorizationDecision:
        """Gather the facts authorize() needs and return its decision"""
        enrolled = False
        if action == CourseAction.view and actor.role in [UserRole.student, UserRole.course_rep]:
            enrolled = self.is_enrolled(actor.id, course.id)
        return authorize(actor, course, action, enrolled=enrolled, recorded_by=recorded_by)

    def require(
        self,
        actor: Actor,
        course: Course,
        action: CourseAction,
        recorded_by: Optional[int] = None
    ) -> None:
        """Raise PermissionDenied unless actor may perform action"""
        decision = self.check(actor, course, action, recorded_by=recorded_by)
        if not decision:
            logger.warning(
                f"Denied {action.value} on course {course.id} for user {actor.id} "
                f"({actor.role.value}): {decision.reason}"
            )
            raise PermissionDenied(decision.reason)

    def get_capabilities(self, actor: Actor, course: Course) -> dict:
        """Map of action name to allowed flag, used to hide unavailable controls"""
        return {
            "can_view": bool(self.check(actor, course, CourseAction.view)),
            "can_start_live": bool(self.check(actor, course, CourseAction.start_live)),
            "can_end_live": bool(self.check(actor, course, CourseAction.end_live)),
            "can_upload": bool(self.check(actor, course, CourseAction.upload)),
            # Without a specific podcast only unconditional delete rights count
            "can_delete": bool(self.check(actor, course, CourseAction.delete_podcast)),
        }
