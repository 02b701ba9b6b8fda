from flask import Blueprint, jsonify, request
from models import db
import logging
import re

from attainment_repository import AttainmentRepository
from co_attainment import COAttainmentCalculator
from errors import NotFoundError, ValidationError
from permissions import get_current_user, get_policy, require

attainment_bp = Blueprint('attainment', __name__, url_prefix='/api/courses')

ACADEMIC_YEAR_PATTERN = re.compile(r'^\d{4}(-\d{2,4})?$')

def get_repository():
    return AttainmentRepository(db.session)

def int_arg(value, name):
    """Parse an optional integer parameter, rejecting garbage with a 400"""
    if value in (None, ''):
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    # JSON bodies deliver numbers as floats; int() would truncate 1.5 to 1
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"{name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")

def bool_arg(value):
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')

def academic_year_arg(value):
    """Accept '2024' or '2024-25' style academic years"""
    if value in (None, ''):
        return None
    value = str(value).strip()
    if not ACADEMIC_YEAR_PATTERN.match(value):
        raise ValidationError(f"Invalid academicYear '{value}', expected e.g. 2024 or 2024-25")
    return value

def json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data

def load_course(repository, course_id):
    course = repository.get_course(course_id)
    if course is None:
        raise NotFoundError(f"Course {course_id} not found")
    return course

@attainment_bp.route('/<int:course_id>/attainment', methods=['GET'])
def get_attainment(course_id):
    """Full-course, single-CO, section or single-student attainment"""
    user = get_current_user()
    academic_year = academic_year_arg(request.args.get('academicYear'))
    co_id = int_arg(request.args.get('coId'), 'coId')
    student_id = int_arg(request.args.get('studentId'), 'studentId')
    section_id = int_arg(request.args.get('sectionId'), 'sectionId')
    include_students = request.args.get('includeStudents') is None or bool_arg(request.args.get('includeStudents'))
    if student_id is not None and section_id is not None:
        raise ValidationError('sectionId cannot be combined with studentId; a student is scored in their own section')

    repository = get_repository()
    course = load_course(repository, course_id)
    calculator = COAttainmentCalculator(repository)
    policy = get_policy()

    if student_id is not None:
        student = repository.get_student(student_id)
        require(policy.can_view_course_attainment(user, course, student),
                'Insufficient permissions to view this student attainment')
        if co_id is not None:
            result = calculator.calculate_student_co_attainment(course.id, co_id, student_id, academic_year)
            return jsonify({'success': True, 'data': result.to_dict()})
        results = calculator.calculate_student_course_attainment(course.id, student_id, academic_year)
        return jsonify({'success': True, 'data': [r.to_dict() for r in results]})

    require(policy.can_view_course_attainment(user, course), 'Insufficient permissions to view CO attainment')

    if co_id is not None:
        result = calculator.calculate_class_co_attainment(course.id, co_id, academic_year, section_id)
        return jsonify({'success': True, 'data': result.to_dict(include_students=include_students)})

    result = calculator.calculate_course_attainment(course.id, academic_year, section_id)
    return jsonify({'success': True, 'data': result.to_dict(include_students=include_students)})

@attainment_bp.route('/<int:course_id>/attainment/calculate', methods=['POST'])
def calculate_attainment(course_id):
    """Recompute course attainment; force=true also persists snapshots"""
    user = get_current_user()
    data = json_body()
    academic_year = academic_year_arg(data.get('academicYear'))
    section_id = int_arg(data.get('sectionId'), 'sectionId')
    force = bool_arg(data.get('force', False))
    include_students = bool_arg(data.get('includeStudents', True))

    repository = get_repository()
    course = load_course(repository, course_id)
    require(get_policy().can_trigger_attainment_recompute(user, course),
            'Insufficient permissions to calculate CO attainment')

    logging.info(f"Starting CO attainment calculation for course {course.code} by user {user.id}")
    calculator = COAttainmentCalculator(repository)
    result = calculator.calculate_course_attainment(course.id, academic_year, section_id)

    saved = None
    if force:
        saved = calculator.save_attainments(result, academic_year)

    if saved is False:
        message = 'CO attainment calculated, but saving the snapshot failed'
    elif saved:
        message = 'CO attainment calculated and saved successfully'
    else:
        message = 'CO attainment calculated successfully'

    return jsonify({
        'success': True,
        'message': message,
        'saved': saved,
        'data': result.to_dict(include_students=include_students)
    })

@attainment_bp.route('/<int:course_id>/attainment/snapshots', methods=['GET'])
def get_attainment_snapshots(course_id):
    """Class-level snapshots saved by earlier forced recomputes"""
    user = get_current_user()
    academic_year = academic_year_arg(request.args.get('academicYear'))
    section_id = int_arg(request.args.get('sectionId'), 'sectionId')

    repository = get_repository()
    course = load_course(repository, course_id)
    require(get_policy().can_view_course_attainment(user, course), 'Insufficient permissions to view CO attainment')

    snapshots = []
    for co in repository.get_course_outcomes(course.id):
        for snapshot in repository.get_co_attainment_snapshots(co.id, academic_year, section_id):
            if snapshot.student_id is not None:
                continue
            snapshots.append({
                'coId': co.id,
                'coCode': co.code,
                'academicYear': snapshot.academic_year,
                'sectionId': snapshot.section_id,
                'percentageMeetingTarget': float(snapshot.percentage),
                'studentsMeetingTarget': snapshot.students_meeting_target,
                'totalStudents': snapshot.total_students,
                'attainmentLevel': snapshot.attainment_level,
                'calculatedAt': snapshot.calculated_at.isoformat() if snapshot.calculated_at else None
            })

    return jsonify({'success': True, 'data': snapshots})
