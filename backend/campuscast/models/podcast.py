from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, Text, Index, text
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from ..core.database import Base


# Locators written while a session is live and after it ends
LIVESTREAM_URL_PREFIX = "livestream://"
LIVESTREAM_PATH_PREFIX = "livestreams/"
ENDED_STREAM_URL = "ended_stream.mp4"


class SessionStatus(enum.Enum):
    scheduled = "scheduled"  # only created administratively
    live = "live"
    ended = "ended"


class Podcast(Base):
    """A podcast record; while it carries live state it is a live session"""

    __tablename__ = "podcasts"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    recorded_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(Enum(SessionStatus), nullable=False, default=SessionStatus.ended)
    start_time = Column(DateTime(timezone=True), nullable=True)
    end_time = Column(DateTime(timezone=True), nullable=True)
    file_url = Column(String, nullable=True)
    storage_path = Column(String, nullable=True)
    duration = Column(Integer, default=0, nullable=False)  # seconds
    view_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    course = relationship("Course", back_populates="podcasts")
    recorder = relationship("User", foreign_keys=[recorded_by])

    # At most one live session per course
    __table_args__ = (
        Index(
            "uq_podcasts_one_live_per_course",
            "course_id",
            unique=True,
            sqlite_where=text("status = 'live'"),
            postgresql_where=text("status = 'live'"),
        ),
    )

    @hybrid_property
    def is_live(self) -> bool:
        return self.status == SessionStatus.live

    @is_live.expression
    def is_live(cls):
        return cls.status == SessionStatus.live

    def to_payload(self) -> dict:
        """Row payload published on the change feed"""
        return {
            "id": self.id,
            "course_id": self.course_id,
            "recorded_by": self.recorded_by,
            "title": self.title,
            "status": self.status.value if self.status else None,
            "is_live": self.is_live,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "file_url": self.file_url,
            "storage_path": self.storage_path,
            "view_count": self.view_count,
        }
