from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..core.database import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    actor_name = Column(String, nullable=False)  # Kept in case the user is deleted
    actor_role = Column(String, nullable=False)  # 'lecturer', 'admin', 'system', ...
    action = Column(String, nullable=False)  # e.g. "SESSION_STARTED", "PODCAST_DELETED"
    target = Column(String, nullable=True)  # e.g. "podcast:12", "user:3"
    target_name = Column(String, nullable=True)
    details = Column(JSON, nullable=True)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    # Relationships
    actor = relationship("User", foreign_keys=[actor_id], back_populates="audit_logs_actor")
