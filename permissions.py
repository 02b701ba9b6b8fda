"""Authenticated user context and the attainment access policy.

Authentication happens upstream; a trusted gateway forwards the verified
identity in ``X-User-*`` headers. Every role rule lives in AttainmentPolicy
so routes only ask capability questions.
"""
from dataclasses import dataclass
from typing import Optional

from flask import current_app, request

from errors import AuthenticationRequiredError, PermissionDeniedError, ValidationError

ADMIN = 'ADMIN'
UNIVERSITY = 'UNIVERSITY'
DEPARTMENT = 'DEPARTMENT'
PROGRAM_COORDINATOR = 'PROGRAM_COORDINATOR'
TEACHER = 'TEACHER'
STUDENT = 'STUDENT'

ROLES = (ADMIN, UNIVERSITY, DEPARTMENT, PROGRAM_COORDINATOR, TEACHER, STUDENT)


@dataclass
class UserContext:
    id: str
    role: str
    college_id: Optional[int] = None
    program_id: Optional[int] = None
    batch_id: Optional[int] = None


def _optional_int(value, header):
    if value in (None, ''):
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"Header {header} must be an integer")


def load_user_context():
    """Build the UserContext for the current request from gateway headers, or None"""
    user_id = request.headers.get('X-User-Id')
    role = request.headers.get('X-User-Role', '').upper()
    if not user_id or not role:
        return None
    if role not in ROLES:
        raise AuthenticationRequiredError(f"Unknown role {role}")
    return UserContext(
        id=user_id,
        role=role,
        college_id=_optional_int(request.headers.get('X-College-Id'), 'X-College-Id'),
        program_id=_optional_int(request.headers.get('X-Program-Id'), 'X-Program-Id'),
        batch_id=_optional_int(request.headers.get('X-Batch-Id'), 'X-Batch-Id'),
    )


def get_current_user():
    user = load_user_context()
    if user is None:
        raise AuthenticationRequiredError("Authorization required")
    return user


def get_policy():
    return current_app.extensions['attainment_policy']


def require(allowed, message):
    if not allowed:
        raise PermissionDeniedError(message)


class AttainmentPolicy:
    """Single place deciding who may view or recompute attainment"""

    def __init__(self, repository_factory):
        # repository_factory() -> AttainmentRepository bound to the request session
        self.repository_factory = repository_factory

    def _program_of(self, course):
        return course.batch.program

    def can_trigger_attainment_recompute(self, user, course):
        if user.role in (ADMIN, UNIVERSITY):
            return True
        program = self._program_of(course)
        if user.role == PROGRAM_COORDINATOR:
            return user.program_id is not None and program.id == user.program_id
        if user.role == DEPARTMENT:
            return user.college_id is not None and program.college_id == user.college_id
        if user.role == TEACHER:
            if course.created_by is not None and course.created_by == str(user.id):
                return True
            return self.repository_factory().has_teacher_assignment(course.id, user.id)
        return False

    def can_view_course_attainment(self, user, course, student=None):
        if self.can_trigger_attainment_recompute(user, course):
            return True
        if user.role == STUDENT:
            # Students only ever see their own record
            return student is not None and student.user_id is not None and student.user_id == str(user.id)
        return False

    def can_import_marks(self, user, course):
        return self.can_trigger_attainment_recompute(user, course)

    def can_view_program_attainment(self, user, program):
        if user.role in (ADMIN, UNIVERSITY):
            return True
        if user.role == DEPARTMENT:
            return user.college_id is not None and program.college_id == user.college_id
        if user.role == STUDENT:
            return False
        return user.program_id is not None and program.id == user.program_id

    def can_manage_program_attainment(self, user, program):
        if user.role == ADMIN:
            return True
        return user.role == PROGRAM_COORDINATOR and user.program_id == program.id
