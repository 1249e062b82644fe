from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime


class CourseAccessResponse(BaseModel):
    course_id: int
    has_access: bool


class CourseCapabilitiesResponse(BaseModel):
    """What the current user may do on a course; drives UI control visibility"""
    course_id: int
    can_view: bool
    can_start_live: bool
    can_end_live: bool
    can_upload: bool
    can_delete: bool


class CourseCreate(BaseModel):
    code: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: Optional[str] = None
    department: Optional[str] = None
    lecturer_id: Optional[int] = None  # defaults to the creating user
    course_rep_id: Optional[int] = None
    student_ids: List[int] = []


class CourseUpdate(BaseModel):
    code: Optional[str] = Field(default=None, min_length=1)
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    department: Optional[str] = None
    lecturer_id: Optional[int] = None
    course_rep_id: Optional[int] = None
    student_ids: Optional[List[int]] = None  # replaces the enrollment list when given


class CourseResponse(BaseModel):
    id: int
    code: str
    title: str
    description: Optional[str] = None
    department: Optional[str] = None
    lecturer_id: int
    course_rep_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EnrollmentResponse(BaseModel):
    course_id: int
    user_id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
