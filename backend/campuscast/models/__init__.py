from ..core.database import Base
from .user import User, UserRole
from .course import Course, Enrollment
from .podcast import Podcast, SessionStatus
from .audit_log import AuditLog

__all__ = [
    "Base",
    "User",
    "UserRole",
    "Course",
    "Enrollment",
    "Podcast",
    "SessionStatus",
    "AuditLog"
]
