from .auth import *
from .user import *
from .course import *
from .session import *

__all__ = [
    # Auth schemas
    "LoginRequest",
    "RegisterRequest",
    "TokenResponse",

    # User schemas
    "UserResponse",
    "UserCreate",
    "UserUpdate",

    # Course schemas
    "CourseAccessResponse",
    "CourseCapabilitiesResponse",
    "CourseCreate",
    "CourseUpdate",
    "CourseResponse",
    "EnrollmentResponse",

    # Session schemas
    "SessionResponse",
    "SessionStatusResponse",
    "SessionChangeEvent",
    "SignedUrlResponse"
]
