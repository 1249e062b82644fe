"""
Course Service
Course records and their enrollments. Deleting a course takes its podcasts
and stored recordings with it.
"""
from typing import Iterable, List, Optional
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
import logging

from ..core.exceptions import Conflict, InvalidRequest, NotFound, PermissionDenied, PersistenceError
from ..core.security import Actor
from ..models.course import Course, Enrollment
from ..models.podcast import Podcast, SessionStatus
from ..models.user import User, UserRole
from ..schemas.course import CourseCreate, CourseUpdate
from .permission_service import PermissionService, CourseAction
from .podcast_service import has_stored_recording, remove_stored_blobs
from .storage_service import StorageService

logger = logging.getLogger(__name__)

# Roles allowed in each course slot
LECTURER_ROLES = {UserRole.lecturer, UserRole.admin}
COURSE_REP_ROLES = {UserRole.course_rep}


class CourseService:
    def __init__(self, db: Session, storage: Optional[StorageService] = None):
        self.db = db
        self.storage = storage
        self.permissions = PermissionService(db)

    def get_course_by_id(self, course_id: int) -> Optional[Course]:
        return self.permissions.get_course(course_id)

    def get_course(self, course_id: int, actor: Actor) -> Course:
        course = self.get_course_by_id(course_id)
        if not course:
            raise NotFound(f"Course {course_id} not found")
        self.permissions.require(actor, course, CourseAction.view)
        return course

    def list_courses(
        self,
        actor: Actor,
        department: Optional[str] = None,
        lecturer_id: Optional[int] = None
    ) -> List[Course]:
        """Courses visible to actor, newest first; students only see their own"""
        query = self.db.query(Course)

        if actor.role in (UserRole.student, UserRole.course_rep):
            visible = self.permissions.visible_course_ids(actor)
            if not visible:
                return []
            query = query.filter(Course.id.in_(visible))

        if department:
            query = query.filter(Course.department == department)
        if lecturer_id is not None:
            query = query.filter(Course.lecturer_id == lecturer_id)

        return query.order_by(Course.created_at.desc(), Course.id.desc()).all()

    def create_course(self, data: CourseCreate, actor: Actor) -> Course:
        if actor.role not in (UserRole.admin, UserRole.lecturer):
            raise PermissionDenied(f"{actor.role.value} may not create courses")

        lecturer_id = data.lecturer_id if data.lecturer_id is not None else actor.id
        # Lecturers only create courses they teach
        if actor.role == UserRole.lecturer and lecturer_id != actor.id:
            raise PermissionDenied("lecturers may only create their own courses")

        self._require_user(lecturer_id, LECTURER_ROLES, "lecturer")
        if data.course_rep_id is not None:
            self._require_user(data.course_rep_id, COURSE_REP_ROLES, "course rep")
        self._require_code_free(data.code)
        self._require_students(data.student_ids)

        course = Course(
            code=data.code,
            title=data.title,
            description=data.description,
            department=data.department,
            lecturer_id=lecturer_id,
            course_rep_id=data.course_rep_id
        )
        self._set_enrollments(course, data.student_ids)
        self.db.add(course)
        self._commit("create course")

        self.db.refresh(course)
        logger.info(f"Course {course.id} ({course.code}) created by user {actor.id}")
        return course

    def update_course(self, course_id: int, data: CourseUpdate, actor: Actor) -> Course:
        course = self._get_course_or_raise(course_id)
        self.permissions.require(actor, course, CourseAction.edit_course)

        changes = data.model_dump(exclude_unset=True)
        student_ids = changes.pop("student_ids", None)

        if "lecturer_id" in changes:
            if changes["lecturer_id"] is None:
                raise InvalidRequest("A course needs a lecturer")
            # Handing a course to someone else is an admin decision
            if actor.role != UserRole.admin and changes["lecturer_id"] != course.lecturer_id:
                raise PermissionDenied("only an admin may reassign the lecturer")
            self._require_user(changes["lecturer_id"], LECTURER_ROLES, "lecturer")
        if changes.get("course_rep_id") is not None:
            self._require_user(changes["course_rep_id"], COURSE_REP_ROLES, "course rep")
        if changes.get("code") and changes["code"] != course.code:
            self._require_code_free(changes["code"])
        if student_ids is not None:
            self._require_students(student_ids)

        for field, value in changes.items():
            setattr(course, field, value)
        if student_ids is not None:
            self._set_enrollments(course, student_ids)

        self._commit("update course")
        self.db.refresh(course)
        logger.info(f"Course {course.id} updated by user {actor.id}")
        return course

    async def delete_course(self, course_id: int, actor: Actor) -> Course:
        """Delete a course with its enrollments, podcasts and stored recordings"""
        course = self._get_course_or_raise(course_id)
        self.permissions.require(actor, course, CourseAction.delete_course)

        podcasts = self.db.query(Podcast).filter(Podcast.course_id == course_id).all()
        if any(podcast.status == SessionStatus.live for podcast in podcasts):
            raise Conflict(f"Course {course_id} has a live session; end it before deleting the course")

        stored_paths = [podcast.storage_path for podcast in podcasts if has_stored_recording(podcast)]

        # Rows before blobs
        self.db.delete(course)
        self._commit("delete course")
        logger.info(
            f"Course {course_id} deleted by user {actor.id} "
            f"with {len(podcasts)} podcasts"
        )

        await remove_stored_blobs(self.storage, stored_paths)
        return course

    def enroll(self, course_id: int, user_id: int, actor: Actor) -> Enrollment:
        """Enroll a user; enrolling twice returns the existing enrollment"""
        course = self._get_course_or_raise(course_id)
        self.permissions.require(actor, course, CourseAction.edit_course)
        self._require_user(user_id, None, "user")

        existing = self._get_enrollment(course_id, user_id)
        if existing is not None:
            return existing

        enrollment = Enrollment(user_id=user_id, course_id=course_id)
        self.db.add(enrollment)
        self._commit("enroll user")
        self.db.refresh(enrollment)
        logger.info(f"User {user_id} enrolled in course {course_id} by user {actor.id}")
        return enrollment

    def unenroll(self, course_id: int, user_id: int, actor: Actor):
        course = self._get_course_or_raise(course_id)
        self.permissions.require(actor, course, CourseAction.edit_course)

        enrollment = self._get_enrollment(course_id, user_id)
        if enrollment is None:
            raise NotFound(f"User {user_id} is not enrolled in course {course_id}")

        self.db.delete(enrollment)
        self._commit("unenroll user")
        logger.info(f"User {user_id} removed from course {course_id} by user {actor.id}")

    def _get_course_or_raise(self, course_id: int) -> Course:
        course = self.get_course_by_id(course_id)
        if not course:
            raise NotFound(f"Course {course_id} not found")
        return course

    def _get_enrollment(self, course_id: int, user_id: int) -> Optional[Enrollment]:
        return self.db.query(Enrollment).filter(
            Enrollment.course_id == course_id,
            Enrollment.user_id == user_id
        ).first()

    def _require_user(self, user_id: int, roles: Optional[set], label: str) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise InvalidRequest(f"Unknown {label} {user_id}")
        if roles is not None and user.role not in roles:
            raise InvalidRequest(f"User {user_id} cannot be the {label} of a course")
        return user

    def _require_code_free(self, code: str):
        if self.db.query(Course).filter(Course.code == code).first():
            raise Conflict(f"Course code {code} already exists")

    def _require_students(self, student_ids: Iterable[int]):
        for user_id in set(student_ids):
            self._require_user(user_id, None, "student")

    def _set_enrollments(self, course: Course, student_ids: Iterable[int]):
        """Make the enrollment list exactly student_ids"""
        wanted = set(student_ids)

        current = {enrollment.user_id: enrollment for enrollment in course.enrollments}
        for user_id, enrollment in current.items():
            if user_id not in wanted:
                course.enrollments.remove(enrollment)
        for user_id in sorted(wanted - set(current)):
            course.enrollments.append(Enrollment(user_id=user_id))

    def _commit(self, operation: str):
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise Conflict(f"Failed to {operation}: the change clashes with an existing record") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {operation}: {e}")
            raise PersistenceError(f"Failed to {operation}") from e
