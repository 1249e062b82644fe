from pydantic import BaseModel
from typing import Optional, Dict, Any
from datetime import datetime
from ..models.podcast import SessionStatus


class SessionResponse(BaseModel):
    id: int
    course_id: int
    recorded_by: int
    title: str
    description: Optional[str] = None
    status: SessionStatus
    is_live: bool  # Derived from status, kept for clients that read the flag
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    file_url: Optional[str] = None
    storage_path: Optional[str] = None
    duration: int = 0
    view_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SessionStatusResponse(BaseModel):
    """Status-only view used before the change feed subscription is up"""
    id: int
    course_id: int
    status: SessionStatus
    is_live: bool
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    class Config:
        from_attributes = True


class SessionChangeEvent(BaseModel):
    """Row-level change published on the change feed"""
    event_type: str  # INSERT, UPDATE
    old: Optional[Dict[str, Any]] = None
    new: Dict[str, Any]


class SignedUrlResponse(BaseModel):
    url: str
    expires_in: int
