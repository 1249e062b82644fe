"""
Tests for User Service
"""
import pytest

from campuscast.core.exceptions import Conflict, NotFound, PermissionDenied
from campuscast.core.security import verify_password
from campuscast.models.course import Course
from campuscast.models.podcast import Podcast, SessionStatus
from campuscast.models.user import User, UserRole
from campuscast.schemas.user import UserCreate, UserUpdate
from campuscast.services.user_service import UserService


@pytest.fixture
def service(db):
    return UserService(db)


class TestListUsers:

    def test_filter_by_roles(self, service, campus):
        users = service.list_users(campus.admin, roles=[UserRole.student, UserRole.course_rep])

        assert {user.name for user in users} == {"R1", "U1", "U2"}

    def test_search_matches_name_or_email_case_insensitively(self, service, campus):
        assert [user.name for user in service.list_users(campus.admin, search="u2")] == ["U2"]
        assert [user.name for user in service.list_users(campus.lecturer, search="L1@CAMPUS")] == ["L1"]

    def test_filter_by_department(self, db, service, campus):
        db.query(User).filter(User.id == campus.student.id).update({User.department: "EE"})
        db.commit()

        assert [user.id for user in service.list_users(campus.admin, department="EE")] == [campus.student.id]

    def test_students_cannot_list(self, service, campus):
        with pytest.raises(PermissionDenied):
            service.list_users(campus.student)


class TestCreateUser:

    def test_create_hashes_password(self, service, campus):
        user = service.create_user(UserCreate(
            name="A2", email="A2@Campus.edu", password="secret1", role=UserRole.admin
        ))

        assert user.email == "a2@campus.edu"
        assert user.role == UserRole.admin
        assert verify_password("secret1", user.password_hash)

    def test_duplicate_email(self, service, campus):
        with pytest.raises(Conflict):
            service.create_user(UserCreate(name="U1", email="U1@campus.edu", password="secret1"))


class TestGetAndUpdateUser:

    def test_self_and_admin_may_read(self, service, campus):
        assert service.get_user(campus.student.id, campus.student).name == "U1"
        assert service.get_user(campus.student.id, campus.admin).name == "U1"

    def test_other_users_denied(self, service, campus):
        with pytest.raises(PermissionDenied):
            service.get_user(campus.student.id, campus.lecturer)

    def test_unknown_user(self, service, campus):
        with pytest.raises(NotFound):
            service.get_user(4242, campus.admin)

    def test_self_update(self, service, campus):
        user = service.update_user(
            campus.student.id,
            UserUpdate(name="U1 Renamed", department="EE"),
            campus.student
        )

        assert user.name == "U1 Renamed"
        assert user.department == "EE"

    def test_only_admin_changes_role(self, service, campus):
        with pytest.raises(PermissionDenied):
            service.update_user(campus.student.id, UserUpdate(role=UserRole.admin), campus.student)

        user = service.update_user(campus.student.id, UserUpdate(role=UserRole.course_rep), campus.admin)
        assert user.role == UserRole.course_rep

    def test_email_in_use(self, service, campus):
        with pytest.raises(Conflict):
            service.update_user(campus.student.id, UserUpdate(email="u2@campus.edu"), campus.student)

    def test_keeping_own_email_is_fine(self, service, campus):
        user = service.update_user(campus.student.id, UserUpdate(email="U1@campus.edu"), campus.student)

        assert user.email == "u1@campus.edu"


class TestDeleteUser:

    def test_admin_deletes_student(self, db, service, campus):
        service.delete_user(campus.student.id, campus.admin)

        assert db.query(User).filter(User.id == campus.student.id).first() is None

    def test_course_rep_slot_is_cleared(self, db, service, campus):
        service.delete_user(campus.course_rep.id, campus.admin)

        assert db.query(Course).filter(Course.id == campus.course.id).one().course_rep_id is None

    def test_lecturer_of_record_cannot_be_deleted(self, service, campus):
        with pytest.raises(Conflict):
            service.delete_user(campus.lecturer.id, campus.admin)

    def test_recorder_cannot_be_deleted(self, db, service, campus):
        db.add(Podcast(
            course_id=campus.course.id,
            recorded_by=campus.course_rep.id,
            title="Week 1",
            status=SessionStatus.ended
        ))
        db.commit()

        with pytest.raises(Conflict):
            service.delete_user(campus.course_rep.id, campus.admin)

    def test_non_admin_denied(self, service, campus):
        with pytest.raises(PermissionDenied):
            service.delete_user(campus.student.id, campus.student)

    def test_admin_cannot_delete_self(self, service, campus):
        with pytest.raises(Conflict):
            service.delete_user(campus.admin.id, campus.admin)
