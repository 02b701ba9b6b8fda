"""CSV marks template and marks import for one assessment.

The import is the producer of StudentMark rows. Re-importing marks for the
same question, student and academic year overwrites the earlier value.
"""
import csv
import io
import logging
import re
from decimal import Decimal, InvalidOperation

from chardet import detect

from errors import ValidationError

ROLL_NUMBER_HEADERS = ('roll_number', 'roll number', 'rollnumber', 'roll no', 'roll_no')
NAME_HEADERS = ('student_name', 'student name', 'name')
QUESTION_HEADER = re.compile(r'^q\s*(\d+)', re.IGNORECASE)


def decode_upload(raw_data):
    """Decode uploaded bytes, trusting chardet only when it is confident"""
    if not raw_data:
        raise ValidationError("Empty file uploaded")
    encoding_result = detect(raw_data)
    if encoding_result and encoding_result.get('encoding') and encoding_result.get('confidence', 0) > 0.7:
        try:
            return raw_data.decode(encoding_result['encoding'])
        except (UnicodeDecodeError, LookupError):
            pass
    for enc in ('utf-8-sig', 'cp1252', 'latin-1'):
        try:
            data = raw_data.decode(enc)
            logging.info(f"Decoded marks upload with {enc} encoding")
            return data
        except UnicodeDecodeError:
            continue
    # latin-1 decodes any byte sequence, so this is unreachable in practice
    raise ValidationError("Could not decode the uploaded file")


def detect_delimiter(data):
    # Most frequent of the common delimiters in the header line, falling back to comma
    first_line = data.strip().splitlines()[0] if data.strip() else ''
    delimiters = {
        '\t': first_line.count('\t'),
        ';': first_line.count(';'),
        ',': first_line.count(','),
    }
    delimiter, count = max(delimiters.items(), key=lambda item: item[1])
    return delimiter if count > 0 else ','


def eligible_students(assessment, students):
    """Students who sit an assessment: everyone for course-wide ones, the section for section ones"""
    if assessment.section_id is None:
        return list(students)
    return [s for s in students if s.section_id == assessment.section_id]


def build_marks_template(assessment, questions, students):
    """CSV text with one column per question and one row per eligible student"""
    output = io.StringIO()
    writer = csv.writer(output, lineterminator='\n')
    header = ['roll_number', 'student_name']
    for question in questions:
        header.append(f"Q{question.number} (max {Decimal(str(question.max_marks)).normalize():f})")
    writer.writerow(header)
    for student in eligible_students(assessment, students):
        writer.writerow([student.roll_number, student.name] + [''] * len(questions))
    return output.getvalue()


def _parse_header(header, questions_by_number):
    roll_index = None
    question_columns = {}
    for index, raw in enumerate(header):
        name = (raw or '').strip()
        lowered = name.lower()
        if lowered in ROLL_NUMBER_HEADERS:
            roll_index = index
            continue
        if lowered in NAME_HEADERS:
            continue
        match = QUESTION_HEADER.match(name)
        if match:
            number = int(match.group(1))
            if number not in questions_by_number:
                raise ValidationError(f"Column '{name}' does not match any question of this assessment")
            question_columns[index] = questions_by_number[number]
        elif name:
            raise ValidationError(f"Unrecognised column '{name}'")

    if roll_index is None:
        raise ValidationError("Missing roll_number column")
    if not question_columns:
        raise ValidationError("No question columns (Q1, Q2, ...) found")
    return roll_index, question_columns


def import_marks(repository, assessment, data, academic_year, max_rows=5000):
    """Import marks text (CSV, TSV or semicolon separated) for an assessment.

    Returns a summary dict: created, updated, skipped (blank cells) and
    row-level errors. Rows with errors are reported, not fatal.
    """
    if not academic_year:
        raise ValidationError("academicYear is required to import marks")
    if not data or not data.strip():
        raise ValidationError("No marks data provided")

    questions = repository.get_assessment_questions(assessment.id)
    if not questions:
        raise ValidationError(f"Assessment {assessment.name} has no questions")
    questions_by_number = {q.number: q for q in questions}

    delimiter = detect_delimiter(data)
    rows = list(csv.reader(io.StringIO(data.strip()), delimiter=delimiter))
    roll_index, question_columns = _parse_header(rows[0], questions_by_number)
    body = [row for row in rows[1:] if any(cell.strip() for cell in row)]
    if len(body) > max_rows:
        raise ValidationError(f"Too many rows ({len(body)}); the limit is {max_rows}")

    roll_numbers = {row[roll_index].strip() for row in body if len(row) > roll_index and row[roll_index].strip()}
    students = repository.get_students_by_roll_number(assessment.course_id, roll_numbers)

    created = updated = skipped = 0
    errors = []
    for line_number, row in enumerate(body, start=2):
        roll_number = row[roll_index].strip() if len(row) > roll_index else ''
        if not roll_number:
            errors.append({'line': line_number, 'message': 'Missing roll number'})
            continue
        student = students.get(roll_number)
        if student is None:
            errors.append({'line': line_number, 'message': f"Student {roll_number} is not enrolled in this course"})
            continue
        if assessment.section_id is not None and student.section_id != assessment.section_id:
            errors.append({'line': line_number,
                           'message': f"Student {roll_number} is not in the section of this assessment"})
            continue

        for index, question in question_columns.items():
            cell = row[index].strip() if len(row) > index else ''
            if cell == '':
                skipped += 1
                continue
            try:
                # Decimal commas only appear when comma is not the delimiter
                obtained = Decimal(cell.replace(',', '.') if delimiter != ',' else cell)
                if not obtained.is_finite():
                    raise InvalidOperation(cell)
            except InvalidOperation:
                errors.append({'line': line_number, 'message': f"Invalid mark '{cell}' for Q{question.number}"})
                continue
            max_marks = Decimal(str(question.max_marks))
            if obtained < 0 or obtained > max_marks:
                errors.append({'line': line_number,
                               'message': f"Mark {cell} for Q{question.number} must be between 0 and {max_marks:f}"})
                continue
            if repository.upsert_mark(question, student.id, obtained, academic_year):
                created += 1
            else:
                updated += 1

    try:
        repository.add_log(
            "IMPORT_MARKS",
            f"Imported marks for assessment {assessment.name} ({academic_year}): "
            f"{created} created, {updated} updated, {len(errors)} errors")
        repository.commit()
    except Exception:
        repository.rollback()
        raise

    if errors:
        logging.warning(f"Marks import for assessment {assessment.id} finished with {len(errors)} row errors")
    return {'created': created, 'updated': updated, 'skipped': skipped, 'errors': errors}
