"""
Tests for Course Service against an in-memory SQLite store
"""
import pytest
from unittest.mock import AsyncMock, patch
from sqlalchemy.exc import OperationalError

from campuscast.core.exceptions import Conflict, InvalidRequest, NotFound, PermissionDenied, PersistenceError
from campuscast.models.course import Course, Enrollment
from campuscast.models.podcast import Podcast, SessionStatus
from campuscast.schemas.course import CourseCreate, CourseUpdate
from campuscast.services.course_service import CourseService
from campuscast.services.live_session_service import LiveSessionService
from campuscast.services.storage_service import StorageService

pytestmark = pytest.mark.asyncio


@pytest.fixture
def storage():
    return AsyncMock(spec=StorageService)


@pytest.fixture
def service(db, storage):
    return CourseService(db, storage)


def enrolled_ids(db, course_id):
    rows = db.query(Enrollment.user_id).filter(Enrollment.course_id == course_id).all()
    return {row[0] for row in rows}


class TestListCourses:

    async def test_student_sees_enrolled_courses_only(self, service, campus):
        courses = service.list_courses(campus.student)

        assert [course.code for course in courses] == ["C1"]

    async def test_student_without_enrollments_sees_nothing(self, service, campus):
        assert service.list_courses(campus.outsider) == []

    async def test_lecturer_sees_all_and_filters(self, db, service, campus):
        campus.other_course.department = "Physics"
        db.commit()

        assert {course.code for course in service.list_courses(campus.lecturer)} == {"C1", "C2"}
        assert [course.code for course in service.list_courses(campus.admin, department="Physics")] == ["C2"]
        assert [
            course.code for course in service.list_courses(campus.admin, lecturer_id=campus.lecturer.id)
        ] == ["C1"]


class TestGetCourse:

    async def test_enrolled_student(self, service, campus):
        assert service.get_course(campus.course.id, campus.student).code == "C1"

    async def test_unenrolled_student_denied(self, service, campus):
        with pytest.raises(PermissionDenied):
            service.get_course(campus.course.id, campus.outsider)

    async def test_unknown_course(self, service, campus):
        with pytest.raises(NotFound):
            service.get_course(9999, campus.admin)


class TestCreateCourse:

    async def test_lecturer_creates_own_course_with_students(self, db, service, campus):
        course = service.create_course(
            CourseCreate(
                code="C3",
                title="Control Systems",
                department="EE",
                student_ids=[campus.student.id, campus.outsider.id]
            ),
            campus.lecturer
        )

        assert course.lecturer_id == campus.lecturer.id
        assert course.department == "EE"
        assert enrolled_ids(db, course.id) == {campus.student.id, campus.outsider.id}

    async def test_lecturer_cannot_create_for_someone_else(self, service, campus):
        with pytest.raises(PermissionDenied):
            service.create_course(
                CourseCreate(code="C3", title="Control", lecturer_id=campus.other_lecturer.id),
                campus.lecturer
            )

    async def test_admin_assigns_lecturer_and_rep(self, service, campus):
        course = service.create_course(
            CourseCreate(
                code="C3",
                title="Control",
                lecturer_id=campus.other_lecturer.id,
                course_rep_id=campus.course_rep.id
            ),
            campus.admin
        )

        assert course.lecturer_id == campus.other_lecturer.id
        assert course.course_rep_id == campus.course_rep.id

    async def test_students_and_course_reps_cannot_create(self, service, campus):
        for actor in (campus.student, campus.course_rep):
            with pytest.raises(PermissionDenied):
                service.create_course(CourseCreate(code="C3", title="Control"), actor)

    async def test_duplicate_code(self, db, service, campus):
        with pytest.raises(Conflict):
            service.create_course(CourseCreate(code="C1", title="Again"), campus.admin)

        assert db.query(Course).count() == 2

    async def test_student_cannot_be_lecturer(self, service, campus):
        with pytest.raises(InvalidRequest):
            service.create_course(
                CourseCreate(code="C3", title="Control", lecturer_id=campus.student.id),
                campus.admin
            )

    async def test_unknown_student(self, db, service, campus):
        with pytest.raises(InvalidRequest):
            service.create_course(CourseCreate(code="C3", title="Control", student_ids=[4242]), campus.admin)

        assert db.query(Course).filter(Course.code == "C3").first() is None


class TestUpdateCourse:

    async def test_lecturer_updates_fields_and_replaces_students(self, db, service, campus):
        course = service.update_course(
            campus.course.id,
            CourseUpdate(title="Signals and Systems", student_ids=[campus.outsider.id]),
            campus.lecturer
        )

        assert course.title == "Signals and Systems"
        assert course.code == "C1"
        assert enrolled_ids(db, course.id) == {campus.outsider.id}

    async def test_other_lecturer_denied(self, service, campus):
        with pytest.raises(PermissionDenied):
            service.update_course(campus.course.id, CourseUpdate(title="Mine now"), campus.other_lecturer)

    async def test_lecturer_cannot_hand_course_over(self, service, campus):
        with pytest.raises(PermissionDenied):
            service.update_course(
                campus.course.id,
                CourseUpdate(lecturer_id=campus.other_lecturer.id),
                campus.lecturer
            )

    async def test_admin_reassigns_lecturer(self, service, campus):
        course = service.update_course(
            campus.course.id,
            CourseUpdate(lecturer_id=campus.other_lecturer.id),
            campus.admin
        )

        assert course.lecturer_id == campus.other_lecturer.id

    async def test_code_taken(self, service, campus):
        with pytest.raises(Conflict):
            service.update_course(campus.course.id, CourseUpdate(code="C2"), campus.admin)

    async def test_store_failure(self, db, service, campus):
        with patch.object(db, "commit", side_effect=OperationalError("UPDATE", {}, Exception("locked"))):
            with pytest.raises(PersistenceError):
                service.update_course(campus.course.id, CourseUpdate(title="x"), campus.admin)


class TestDeleteCourse:

    async def test_admin_deletes_course_podcasts_and_blobs(self, db, service, storage, campus):
        course_id = campus.course.id
        db.add(Podcast(
            course_id=course_id,
            recorded_by=campus.lecturer.id,
            title="Week 1",
            status=SessionStatus.ended,
            storage_path=f"{course_id}/week1.mp3"
        ))
        db.commit()

        await service.delete_course(course_id, campus.admin)

        assert db.query(Course).filter(Course.id == course_id).first() is None
        assert db.query(Podcast).filter(Podcast.course_id == course_id).count() == 0
        assert enrolled_ids(db, course_id) == set()
        storage.remove.assert_awaited_once_with([f"{course_id}/week1.mp3"])

    async def test_lecturer_cannot_delete(self, service, campus):
        with pytest.raises(PermissionDenied):
            await service.delete_course(campus.course.id, campus.lecturer)

    async def test_live_course_cannot_be_deleted(self, db, service, storage, campus):
        await LiveSessionService(db).start_session(campus.course.id, campus.lecturer)

        with pytest.raises(Conflict):
            await service.delete_course(campus.course.id, campus.admin)

        assert db.query(Course).filter(Course.id == campus.course.id).first() is not None
        storage.remove.assert_not_awaited()

    async def test_ended_livestream_leaves_no_blob_to_remove(self, db, service, storage, campus):
        live = LiveSessionService(db)
        session = await live.start_session(campus.course.id, campus.lecturer)
        await live.end_session(session.id, campus.lecturer)

        await service.delete_course(campus.course.id, campus.admin)

        storage.remove.assert_not_awaited()


class TestEnrollment:

    async def test_enroll_is_idempotent(self, db, service, campus):
        first = service.enroll(campus.course.id, campus.outsider.id, campus.lecturer)
        second = service.enroll(campus.course.id, campus.outsider.id, campus.lecturer)

        assert first.id == second.id
        assert enrolled_ids(db, campus.course.id) == {campus.student.id, campus.outsider.id}

    async def test_enroll_unknown_user(self, service, campus):
        with pytest.raises(InvalidRequest):
            service.enroll(campus.course.id, 4242, campus.admin)

    async def test_course_rep_cannot_enroll(self, service, campus):
        with pytest.raises(PermissionDenied):
            service.enroll(campus.course.id, campus.outsider.id, campus.course_rep)

    async def test_unenroll(self, db, service, campus):
        service.unenroll(campus.course.id, campus.student.id, campus.lecturer)

        assert enrolled_ids(db, campus.course.id) == set()
        with pytest.raises(NotFound):
            service.unenroll(campus.course.id, campus.student.id, campus.lecturer)
