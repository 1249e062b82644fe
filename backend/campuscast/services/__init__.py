from .auth_service import AuthService
from .user_service import UserService
from .course_service import CourseService
from .permission_service import PermissionService
from .live_session_service import LiveSessionService
from .podcast_service import PodcastService
from .presence_relay import PresenceRelay
from .storage_service import StorageService

__all__ = [
    "AuthService",
    "UserService",
    "CourseService",
    "PermissionService",
    "LiveSessionService",
    "PodcastService",
    "PresenceRelay",
    "StorageService"
]
