"""
Domain errors raised by the service layer.
Routers translate these into HTTP responses; nothing here is retried.
"""


class CampusCastError(Exception):
    """Base class for service-layer errors"""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class PermissionDenied(CampusCastError):
    """Actor lacks the role or course ownership for the action"""


class NotFound(CampusCastError):
    """Session, podcast or course is absent (or not in the required state)"""


class Conflict(CampusCastError):
    """The change clashes with existing state (duplicate key, live session in the way)"""


class InvalidRequest(CampusCastError):
    """A referenced record is missing or has the wrong role for the change"""


class PersistenceError(CampusCastError):
    """A relational store or object store call failed"""


class MediaAccessError(CampusCastError):
    """A client could not acquire its microphone or camera"""
