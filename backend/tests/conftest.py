"""
Shared fixtures: an in-memory SQLite database and a small campus
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ.pop("REDIS_URL", None)
os.environ.pop("STORAGE_URL", None)

from types import SimpleNamespace

import pytest

from campuscast.core.database import Base, engine, SessionLocal
from campuscast.core.security import Actor
from campuscast.models import User, UserRole, Course, Enrollment


@pytest.fixture
def db():
    """Fresh schema per test"""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def campus(db):
    """Course C1 taught by L1 with course rep R1 and enrolled student U1"""
    lecturer = User(name="L1", email="l1@campus.edu", role=UserRole.lecturer)
    other_lecturer = User(name="L2", email="l2@campus.edu", role=UserRole.lecturer)
    course_rep = User(name="R1", email="r1@campus.edu", role=UserRole.course_rep)
    student = User(name="U1", email="u1@campus.edu", role=UserRole.student)
    outsider = User(name="U2", email="u2@campus.edu", role=UserRole.student)
    admin = User(name="A1", email="a1@campus.edu", role=UserRole.admin)
    db.add_all([lecturer, other_lecturer, course_rep, student, outsider, admin])
    db.commit()

    course = Course(
        code="C1",
        title="Intro to Signals",
        lecturer_id=lecturer.id,
        course_rep_id=course_rep.id
    )
    other_course = Course(code="C2", title="Thermodynamics", lecturer_id=other_lecturer.id)
    db.add_all([course, other_course])
    db.commit()

    db.add(Enrollment(user_id=student.id, course_id=course.id))
    db.commit()

    return SimpleNamespace(
        course=course,
        other_course=other_course,
        lecturer=Actor.from_user(lecturer),
        other_lecturer=Actor.from_user(other_lecturer),
        course_rep=Actor.from_user(course_rep),
        student=Actor.from_user(student),
        outsider=Actor.from_user(outsider),
        admin=Actor.from_user(admin),
    )
