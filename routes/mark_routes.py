from flask import Blueprint, Response, current_app, jsonify, request

from marks_import import build_marks_template, decode_upload, import_marks
from errors import NotFoundError
from permissions import get_current_user, get_policy, require
from routes.attainment_routes import academic_year_arg, get_repository, json_body

mark_bp = Blueprint('marks', __name__, url_prefix='/api/assessments')

def load_assessment(repository, assessment_id):
    assessment = repository.get_assessment(assessment_id)
    if assessment is None or not assessment.is_active:
        raise NotFoundError(f"Assessment {assessment_id} not found")
    return assessment

@mark_bp.route('/<int:assessment_id>/marks-template', methods=['GET'])
def download_marks_template(assessment_id):
    """CSV template with one row per eligible student and one column per question"""
    user = get_current_user()
    repository = get_repository()
    assessment = load_assessment(repository, assessment_id)
    require(get_policy().can_import_marks(user, assessment.course),
            'Insufficient permissions to manage marks for this course')

    questions = repository.get_assessment_questions(assessment.id)
    students = repository.get_enrolled_students(assessment.course_id)
    csv_text = build_marks_template(assessment, questions, students)

    filename = f"{assessment.course.code}_{assessment.name}_marks.csv".replace(' ', '_')
    return Response(
        csv_text,
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={filename}'}
    )

@mark_bp.route('/<int:assessment_id>/marks', methods=['POST'])
def upload_marks(assessment_id):
    """Import marks from an uploaded file, a form field or a JSON body"""
    user = get_current_user()
    repository = get_repository()
    assessment = load_assessment(repository, assessment_id)
    require(get_policy().can_import_marks(user, assessment.course),
            'Insufficient permissions to manage marks for this course')

    # Get marks data from file, form textarea or JSON
    if 'marks_file' in request.files and request.files['marks_file'].filename:
        marks_data = decode_upload(request.files['marks_file'].read())
        academic_year = request.form.get('academicYear')
    elif request.form:
        marks_data = request.form.get('marks_data', '')
        academic_year = request.form.get('academicYear')
    else:
        data = json_body()
        marks_data = data.get('marksData', '')
        academic_year = data.get('academicYear')

    summary = import_marks(
        repository,
        assessment,
        marks_data,
        academic_year_arg(academic_year),
        max_rows=current_app.config['MAX_IMPORT_ROWS']
    )
    return jsonify({'success': True, 'data': summary})
