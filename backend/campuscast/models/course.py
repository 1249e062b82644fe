from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..core.database import Base


class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, nullable=False, unique=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    department = Column(String, nullable=True, index=True)
    lecturer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    course_rep_id = Column(Integer, ForeignKey("users.id"), nullable=True)  # optional
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    lecturer = relationship("User", foreign_keys=[lecturer_id])
    course_rep = relationship("User", foreign_keys=[course_rep_id])
    enrollments = relationship("Enrollment", back_populates="course", cascade="all, delete-orphan")
    podcasts = relationship("Podcast", back_populates="course", cascade="all, delete-orphan")


class Enrollment(Base):
    __tablename__ = "user_courses"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("User", back_populates="enrollments")
    course = relationship("Course", back_populates="enrollments")

    __table_args__ = (
        UniqueConstraint('user_id', 'course_id', name='unique_user_course_enrollment'),
    )
