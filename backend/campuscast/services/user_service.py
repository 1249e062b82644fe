from typing import List, Optional
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
import logging

from ..core.exceptions import Conflict, NotFound, PermissionDenied, PersistenceError
from ..core.security import Actor, get_password_hash
from ..models.course import Course
from ..models.podcast import Podcast
from ..models.user import User, UserRole
from ..schemas.user import UserCreate, UserUpdate

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email.lower()).first()

    def get_user(self, user_id: int, actor: Actor) -> User:
        """Admins see anyone, everyone else only themselves"""
        self._require_self_or_admin(user_id, actor)
        user = self.get_user_by_id(user_id)
        if not user:
            raise NotFound(f"User {user_id} not found")
        return user

    def list_users(
        self,
        actor: Actor,
        roles: Optional[List[UserRole]] = None,
        department: Optional[str] = None,
        search: Optional[str] = None
    ) -> List[User]:
        """Directory listing for admins and lecturers, newest accounts first"""
        if actor.role not in (UserRole.admin, UserRole.lecturer):
            raise PermissionDenied(f"{actor.role.value} may not list users")

        query = self.db.query(User)
        if roles:
            query = query.filter(User.role.in_(roles))
        if department:
            query = query.filter(User.department == department)
        if search:
            # Case-insensitive match on name or email
            pattern = f"%{search.lower()}%"
            query = query.filter(or_(func.lower(User.name).like(pattern), User.email.like(pattern)))

        return query.order_by(User.created_at.desc(), User.id.desc()).all()

    def create_user(self, data: UserCreate) -> User:
        if self.get_user_by_email(data.email):
            raise Conflict("Email already registered")

        user = User(
            name=data.name,
            email=data.email.lower(),
            password_hash=get_password_hash(data.password),
            role=data.role,
            department=data.department
        )
        self.db.add(user)
        self._commit("create user")
        self.db.refresh(user)
        logger.info(f"Created user {user.id} as {user.role.value}")
        return user

    def update_user(self, user_id: int, data: UserUpdate, actor: Actor) -> User:
        user = self.get_user(user_id, actor)
        changes = data.model_dump(exclude_unset=True)

        role = changes.pop("role", None)
        if role is not None and role != user.role:
            if actor.role != UserRole.admin:
                raise PermissionDenied("only an admin may change a role")
            user.role = role

        email = changes.pop("email", None)
        if email is not None:
            email = email.lower()
            existing = self.get_user_by_email(email)
            if existing is not None and existing.id != user.id:
                raise Conflict("Email already in use")
            user.email = email

        for field, value in changes.items():
            setattr(user, field, value)

        self._commit("update user")
        self.db.refresh(user)
        logger.info(f"User {user.id} updated by user {actor.id}")
        return user

    def delete_user(self, user_id: int, actor: Actor) -> User:
        if actor.role != UserRole.admin:
            raise PermissionDenied("only an admin may delete users")
        user = self.get_user_by_id(user_id)
        if not user:
            raise NotFound(f"User {user_id} not found")
        if user.id == actor.id:
            raise Conflict("Admins cannot delete their own account")

        # Courses and podcasts keep a non-null reference to these users
        if self.db.query(Course).filter(Course.lecturer_id == user.id).first():
            raise Conflict("User is the lecturer of a course; reassign it first")
        if self.db.query(Podcast).filter(Podcast.recorded_by == user.id).first():
            raise Conflict("User has recorded podcasts")

        self.db.query(Course).filter(Course.course_rep_id == user.id).update(
            {Course.course_rep_id: None}, synchronize_session=False
        )
        self.db.delete(user)
        self._commit("delete user")
        logger.info(f"User {user_id} deleted by user {actor.id}")
        return user

    def _require_self_or_admin(self, user_id: int, actor: Actor):
        if actor.role != UserRole.admin and actor.id != user_id:
            raise PermissionDenied(f"User {actor.id} may not manage user {user_id}")

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
