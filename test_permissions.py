import pytest

from attainment_repository import AttainmentRepository
from conftest import auth_headers
from models import db
from permissions import AttainmentPolicy, UserContext

@pytest.fixture
def policy(app):
    return AttainmentPolicy(lambda: AttainmentRepository(db.session))

def test_admin_and_university_see_everything(policy, factory):
    course = factory.course()
    for role in ('ADMIN', 'UNIVERSITY'):
        user = UserContext(id='u1', role=role)
        assert policy.can_trigger_attainment_recompute(user, course)
        assert policy.can_view_program_attainment(user, factory.program)

def test_teacher_needs_creation_or_active_assignment(policy, factory):
    course = factory.course(created_by='teacher-1')
    creator = UserContext(id='teacher-1', role='TEACHER')
    other = UserContext(id='teacher-2', role='TEACHER')

    assert policy.can_trigger_attainment_recompute(creator, course)
    assert not policy.can_trigger_attainment_recompute(other, course)
    factory.assign_teacher(course, 'teacher-2')
    assert policy.can_trigger_attainment_recompute(other, course)
    assert policy.can_import_marks(other, course)

def test_department_scoped_to_college(policy, factory):
    course = factory.course()

    assert policy.can_view_course_attainment(
        UserContext(id='d', role='DEPARTMENT', college_id=factory.college.id), course)
    assert not policy.can_view_course_attainment(
        UserContext(id='d', role='DEPARTMENT', college_id=factory.college.id + 1), course)
    assert not policy.can_view_course_attainment(UserContext(id='d', role='DEPARTMENT'), course)

def test_student_only_sees_own_record(policy, factory):
    course = factory.course()
    me = factory.student(user_id='stu-1', course=course)
    other = factory.student(user_id='stu-2', course=course)
    unlinked = factory.student(course=course)
    user = UserContext(id='stu-1', role='STUDENT')

    assert policy.can_view_course_attainment(user, course, me)
    assert not policy.can_view_course_attainment(user, course, other)
    assert not policy.can_view_course_attainment(user, course, unlinked)
    assert not policy.can_view_course_attainment(user, course)
    assert not policy.can_trigger_attainment_recompute(user, course)
    assert not policy.can_view_program_attainment(
        UserContext(id='stu-1', role='STUDENT', program_id=factory.program.id), factory.program)

def test_only_admin_and_coordinator_manage_program(policy, factory):
    program = factory.program

    assert policy.can_manage_program_attainment(UserContext(id='a', role='ADMIN'), program)
    assert policy.can_manage_program_attainment(
        UserContext(id='pc', role='PROGRAM_COORDINATOR', program_id=program.id), program)
    assert not policy.can_manage_program_attainment(
        UserContext(id='pc', role='PROGRAM_COORDINATOR', program_id=program.id + 1), program)
    assert not policy.can_manage_program_attainment(UserContext(id='u', role='UNIVERSITY'), program)
    assert policy.can_view_program_attainment(
        UserContext(id='t', role='TEACHER', program_id=program.id), program)

def test_unknown_role_is_unauthorized(client, factory):
    course, _, _, _ = factory.two_student_course()

    response = client.get(f'/api/courses/{course.id}/attainment', headers=auth_headers(role='JANITOR'))

    assert response.status_code == 401

def test_malformed_scope_header_is_rejected(client, factory):
    course, _, _, _ = factory.two_student_course()
    headers = auth_headers('PROGRAM_COORDINATOR', 'pc-1')
    headers['X-Program-Id'] = 'cse'

    response = client.get(f'/api/courses/{course.id}/attainment', headers=headers)

    assert response.status_code == 400

def test_injected_policy_replaces_role_rules(tmp_path, monkeypatch):
    from app import create_app

    class DenyAll:
        def can_view_course_attainment(self, user, course, student=None):
            return False

    monkeypatch.setenv('LOG_FILE', str(tmp_path / 'test.log'))
    app = create_app({'TESTING': True, 'SQLALCHEMY_DATABASE_URI': 'sqlite://'}, policy=DenyAll())
    with app.app_context():
        from conftest import ObeFactory
        course, _, _, _ = ObeFactory().two_student_course()
        response = app.test_client().get(f'/api/courses/{course.id}/attainment', headers=auth_headers())
        db.session.remove()
        db.drop_all()

    assert response.status_code == 403
