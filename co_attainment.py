"""Course Outcome attainment.

Student level: marks on every question mapped to a CO are summed against the
summed maximum of the same question set. Unattempted questions score 0 but
keep their maximum, so skipping a question never raises a percentage.

Class level: the share of students whose percentage meets the CO target,
classified into levels 0-3 by the CO's thresholds. Students without any
question for the CO are left out of the denominator.
"""
import logging
import traceback
from datetime import datetime
from decimal import Decimal

from attainment_results import ClassCOAttainment, CourseAttainment, StudentCOAttainment, round2
from errors import InvalidConfigurationError, NotFoundError
from models import COAttainment

ZERO = Decimal('0')
HUNDRED = Decimal('100')


def to_decimal(value):
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def current_academic_year():
    return str(datetime.now().year)


def classify_attainment_level(percentage, thresholds):
    """Map a percentage-meeting-target to an attainment level 0-3.

    The highest threshold met wins; the percentage is rounded to 2 places
    before comparing so 84.999 counts as 85.00.
    """
    rounded = round2(to_decimal(percentage))
    level1, level2, level3 = (round2(to_decimal(t)) for t in thresholds)
    if rounded >= level3:
        return 3
    if rounded >= level2:
        return 2
    if rounded >= level1:
        return 1
    return 0


def validate_thresholds(co_code, target, thresholds):
    level1, level2, level3 = thresholds
    if not (ZERO <= target <= HUNDRED):
        raise InvalidConfigurationError(
            f"Target percentage for {co_code} must be between 0 and 100 (got {target})")
    if not (ZERO <= level1 < level2 < level3 <= HUNDRED):
        raise InvalidConfigurationError(
            f"Thresholds for {co_code} must satisfy 0 <= level1 < level2 < level3 <= 100 "
            f"(got {level1}, {level2}, {level3})")


def questions_for_student(questions, student):
    """Course-wide questions plus the questions of the student's own section"""
    return [q for q in questions if q.section_id is None or q.section_id == student.section_id]


def compute_student_co_attainment(student, co, questions, marks, target_percentage):
    """Aggregate one student's marks over the CO's question set.

    ``marks`` maps (student_id, question_id) to a StudentMark.
    """
    applicable = questions_for_student(questions, student)
    total_obtained = ZERO
    total_max = ZERO
    attempted = 0

    for question in applicable:
        max_marks = to_decimal(question.max_marks)
        total_max += max_marks
        mark = marks.get((student.id, question.id))
        if mark is None:
            continue
        attempted += 1
        obtained = to_decimal(mark.obtained_marks)
        if obtained > max_marks:
            logging.warning(f"Mark {obtained} above maximum {max_marks} for student {student.id} "
                            f"on question {question.id}; clamping to maximum")
            obtained = max_marks
        elif obtained < ZERO:
            logging.warning(f"Negative mark {obtained} for student {student.id} on question {question.id}; "
                            f"counting as 0")
            obtained = ZERO
        total_obtained += obtained

    if total_max > ZERO:
        percentage = total_obtained / total_max * HUNDRED
        met_target = round2(percentage) >= round2(target_percentage)
    else:
        percentage = ZERO
        met_target = False

    return StudentCOAttainment(
        student_id=student.id,
        student_name=student.name,
        roll_number=student.roll_number,
        co_id=co.id,
        co_code=co.code,
        percentage=percentage,
        met_target=met_target,
        total_obtained_marks=total_obtained,
        total_max_marks=total_max,
        attempted_questions=attempted,
        total_questions=len(applicable),
    )


class COAttainmentCalculator:
    """Student, class, section and course CO attainment over an injected repository"""

    def __init__(self, repository):
        self.repository = repository

    # --- Loading and validation -------------------------------------------

    def _load_course(self, course_id):
        course = self.repository.get_course(course_id)
        if course is None:
            raise NotFoundError(f"Course {course_id} not found")
        return course

    def _load_course_outcome(self, course, co_id):
        co = self.repository.get_course_outcome(co_id)
        if co is None or co.course_id != course.id or not co.is_active:
            raise NotFoundError(f"Course outcome {co_id} not found in course {course.code}")
        return co

    def _load_section(self, course, section_id):
        if section_id is None:
            return None
        section = self.repository.get_section(section_id)
        if section is None or section.batch_id != course.batch_id or not section.is_active:
            raise NotFoundError(f"Section {section_id} not found for course {course.code}")
        return section

    def _co_settings(self, co):
        target = to_decimal(co.effective_target_percentage)
        thresholds = tuple(to_decimal(t) for t in co.effective_thresholds)
        validate_thresholds(co.code, target, thresholds)
        return target, thresholds

    # --- Calculations ------------------------------------------------------

    def calculate_student_co_attainment(self, course_id, co_id, student_id, academic_year=None):
        course = self._load_course(course_id)
        co = self._load_course_outcome(course, co_id)
        student = self.repository.get_student(student_id)
        if student is None:
            raise NotFoundError(f"Student {student_id} not found")
        if not self.repository.is_enrolled(course.id, student.id):
            raise NotFoundError(f"Student {student.roll_number} is not enrolled in course {course.code}")

        target, _ = self._co_settings(co)
        questions = self.repository.get_co_questions(course.id, co.id)
        marks = self.repository.get_marks([q.id for q in questions], [student.id], academic_year)
        return compute_student_co_attainment(student, co, questions, marks, target)

    def calculate_student_course_attainment(self, course_id, student_id, academic_year=None):
        """One student's attainment on every active CO of the course"""
        course = self._load_course(course_id)
        course_outcomes = self.repository.get_course_outcomes(course.id)
        if not course_outcomes:
            raise NotFoundError(f"No active course outcomes found for course {course.code}")
        return [self.calculate_student_co_attainment(course.id, co.id, student_id, academic_year)
                for co in course_outcomes]

    def class_attainment_for(self, course, co, students, academic_year=None, section_id=None):
        target, thresholds = self._co_settings(co)
        questions = self.repository.get_co_questions(course.id, co.id, section_id)
        marks = self.repository.get_marks([q.id for q in questions], [s.id for s in students], academic_year)

        student_results = [compute_student_co_attainment(s, co, questions, marks, target) for s in students]
        counted = [r for r in student_results if r.has_data]
        meeting = sum(1 for r in counted if r.met_target)

        if counted:
            percentage_meeting = Decimal(meeting) / Decimal(len(counted)) * HUNDRED
            level = classify_attainment_level(percentage_meeting, thresholds)
        else:
            percentage_meeting = ZERO
            level = 0

        return ClassCOAttainment(
            co_id=co.id,
            co_code=co.code,
            co_description=co.description,
            course_id=course.id,
            section_id=section_id,
            target_percentage=target,
            thresholds=thresholds,
            percentage_meeting_target=percentage_meeting,
            students_meeting_target=meeting,
            total_students=len(counted),
            attainment_level=level,
            total_questions=len(questions),
            student_attainments=student_results,
        )

    def calculate_class_co_attainment(self, course_id, co_id, academic_year=None, section_id=None):
        course = self._load_course(course_id)
        co = self._load_course_outcome(course, co_id)
        self._load_section(course, section_id)
        students = self.repository.get_enrolled_students(course.id, section_id)
        return self.class_attainment_for(course, co, students, academic_year, section_id)

    def calculate_section_co_attainment(self, course_id, co_id, section_id, academic_year=None):
        return self.calculate_class_co_attainment(course_id, co_id, academic_year, section_id)

    def calculate_course_attainment(self, course_id, academic_year=None, section_id=None):
        course = self._load_course(course_id)
        self._load_section(course, section_id)
        course_outcomes = self.repository.get_course_outcomes(course.id)
        if not course_outcomes:
            raise NotFoundError(f"No active course outcomes found for course {course.code}")

        students = self.repository.get_enrolled_students(course.id, section_id)
        co_results = [self.class_attainment_for(course, co, students, academic_year, section_id)
                      for co in course_outcomes]

        logging.info(f"Calculated attainment for course {course.code}: {len(co_results)} COs, "
                     f"{len(students)} students, year {academic_year or 'all'}")
        return CourseAttainment(
            course_id=course.id,
            course_code=course.code,
            course_name=course.name,
            section_id=section_id,
            academic_year=academic_year,
            co_attainments=co_results,
            total_students=len(students),
            calculated_at=datetime.now(),
        )

    # --- Snapshots ---------------------------------------------------------

    def save_attainments(self, course_attainment, academic_year=None, include_students=True):
        """Persist class (and optionally per-student) snapshots, overwriting earlier ones.

        Returns True on success. A failure is logged and reported as False so
        the computed result can still be returned to the caller.
        """
        year = academic_year or course_attainment.academic_year or current_academic_year()
        snapshots = []
        for co_result in course_attainment.co_attainments:
            snapshots.append(COAttainment(
                co_id=co_result.co_id,
                course_id=course_attainment.course_id,
                section_id=course_attainment.section_id,
                academic_year=year,
                percentage=round2(co_result.percentage_meeting_target),
                students_meeting_target=co_result.students_meeting_target,
                total_students=co_result.total_students,
                attainment_level=co_result.attainment_level,
            ))
            if not include_students:
                continue
            for student_result in co_result.student_attainments:
                if not student_result.has_data:
                    continue
                snapshots.append(COAttainment(
                    co_id=co_result.co_id,
                    course_id=course_attainment.course_id,
                    student_id=student_result.student_id,
                    section_id=course_attainment.section_id,
                    academic_year=year,
                    percentage=round2(student_result.percentage),
                    met_target=student_result.met_target,
                ))

        try:
            self.repository.add_log(
                "SAVE_CO_ATTAINMENT",
                f"Saved {len(snapshots)} CO attainment snapshots for course {course_attainment.course_code} ({year})")
            self.repository.replace_co_attainment_snapshots(
                [co.co_id for co in course_attainment.co_attainments],
                year,
                course_attainment.section_id,
                snapshots)
            return True
        except Exception as e:
            self.repository.rollback()
            logging.error(f"Error saving CO attainment snapshots for course {course_attainment.course_code}: "
                          f"{str(e)}\n{traceback.format_exc()}")
            return False
