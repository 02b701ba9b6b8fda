"""Persistence handle for the attainment engine.

The calculators never touch ``db.session`` directly; a repository wrapping a
SQLAlchemy session is passed into them, so every calculation is a function of
what this object returns at call time.
"""
import logging
from collections import namedtuple
from datetime import datetime

from sqlalchemy import or_

from models import (
    Assessment, AttainmentWeightConfig, Batch, COAttainment, Course, CourseOutcome, Enrollment,
    IndirectAttainment, Log, Program, ProgramOutcome, Question, Section, Student, StudentMark,
    TeacherAssignment, course_outcome_program_outcome, question_course_outcome
)

# Question as seen by the engine: section_id is the owning assessment's section (None = course-wide)
QuestionRef = namedtuple('QuestionRef', ['id', 'number', 'max_marks', 'assessment_id', 'section_id'])

# One active CO -> PO mapping inside a program batch
MappingRow = namedtuple('MappingRow', ['po_id', 'level', 'course_outcome', 'course'])


def po_sort_key(po):
    """Sort POs numerically by the digits in their code (PO2 before PO10)"""
    digits = ''.join(filter(str.isdigit, po.code))
    return (int(digits) if digits else 0, po.code)


class AttainmentRepository:
    def __init__(self, session):
        self.session = session

    # --- Lookups -----------------------------------------------------------

    def get_course(self, course_id):
        return self.session.get(Course, course_id)

    def get_course_outcome(self, co_id):
        return self.session.get(CourseOutcome, co_id)

    def get_course_outcomes(self, course_id):
        return (self.session.query(CourseOutcome)
                .filter(CourseOutcome.course_id == course_id, CourseOutcome.is_active.is_(True))
                .order_by(CourseOutcome.code)
                .all())

    def get_section(self, section_id):
        return self.session.get(Section, section_id)

    def get_student(self, student_id):
        return self.session.get(Student, student_id)

    def get_program(self, program_id):
        return self.session.get(Program, program_id)

    def get_batch(self, batch_id):
        return self.session.get(Batch, batch_id)

    def get_assessment(self, assessment_id):
        return self.session.get(Assessment, assessment_id)

    def get_program_outcomes(self, program_id):
        pos = (self.session.query(ProgramOutcome)
               .filter(ProgramOutcome.program_id == program_id, ProgramOutcome.is_active.is_(True))
               .all())
        return sorted(pos, key=po_sort_key)

    def has_teacher_assignment(self, course_id, teacher_id):
        return self.session.query(TeacherAssignment.id).filter(
            TeacherAssignment.course_id == course_id,
            TeacherAssignment.teacher_id == str(teacher_id),
            TeacherAssignment.is_active.is_(True)
        ).first() is not None

    # --- Enrollment --------------------------------------------------------

    def get_enrolled_students(self, course_id, section_id=None):
        """Actively enrolled, active students of a course, optionally limited to one section"""
        query = (self.session.query(Student)
                 .join(Enrollment, Enrollment.student_id == Student.id)
                 .filter(Enrollment.course_id == course_id,
                         Enrollment.is_active.is_(True),
                         Student.is_active.is_(True)))
        if section_id is not None:
            query = query.filter(Student.section_id == section_id)
        return query.order_by(Student.roll_number).all()

    def is_enrolled(self, course_id, student_id):
        return self.session.query(Enrollment.id).filter(
            Enrollment.course_id == course_id,
            Enrollment.student_id == student_id,
            Enrollment.is_active.is_(True)
        ).first() is not None

    def get_students_by_roll_number(self, course_id, roll_numbers):
        if not roll_numbers:
            return {}
        students = (self.session.query(Student)
                    .join(Enrollment, Enrollment.student_id == Student.id)
                    .filter(Enrollment.course_id == course_id,
                            Enrollment.is_active.is_(True),
                            Student.roll_number.in_(list(roll_numbers)))
                    .all())
        return {s.roll_number: s for s in students}

    # --- Questions and marks ----------------------------------------------

    def get_co_questions(self, course_id, co_id, section_id=None):
        """Questions actively mapped to a CO, from active assessments of the course.

        With section_id set only course-wide assessments and that section's
        assessments are returned.
        """
        query = (self.session.query(Question.id, Question.number, Question.max_marks,
                                    Assessment.id, Assessment.section_id)
                 .join(Assessment, Assessment.id == Question.assessment_id)
                 .join(question_course_outcome, question_course_outcome.c.question_id == Question.id)
                 .filter(question_course_outcome.c.course_outcome_id == co_id,
                         question_course_outcome.c.is_active.is_(True),
                         Assessment.course_id == course_id,
                         Assessment.is_active.is_(True)))
        if section_id is not None:
            query = query.filter(or_(Assessment.section_id.is_(None), Assessment.section_id == section_id))
        rows = query.order_by(Assessment.id, Question.number).all()
        return [QuestionRef(*row) for row in rows]

    def get_assessment_questions(self, assessment_id):
        return (self.session.query(Question)
                .filter(Question.assessment_id == assessment_id)
                .order_by(Question.number)
                .all())

    def get_marks(self, question_ids, student_ids=None, academic_year=None):
        """Return {(student_id, question_id): StudentMark}.

        Without an academic year the most recently written mark wins when a
        question/student pair has marks in more than one year.
        """
        if not question_ids:
            return {}
        query = self.session.query(StudentMark).filter(StudentMark.question_id.in_(list(question_ids)))
        if student_ids is not None:
            if not student_ids:
                return {}
            query = query.filter(StudentMark.student_id.in_(list(student_ids)))
        if academic_year:
            query = query.filter(StudentMark.academic_year == academic_year)
        marks = {}
        for mark in query.order_by(StudentMark.updated_at, StudentMark.id).all():
            marks[(mark.student_id, mark.question_id)] = mark
        return marks

    def upsert_mark(self, question, student_id, obtained_marks, academic_year):
        """Insert or overwrite the mark for (question, student, academic year). Returns True when created."""
        mark = self.session.query(StudentMark).filter_by(
            question_id=question.id, student_id=student_id, academic_year=academic_year
        ).first()
        if mark is None:
            self.session.add(StudentMark(
                question_id=question.id,
                student_id=student_id,
                obtained_marks=obtained_marks,
                max_marks=question.max_marks,
                academic_year=academic_year
            ))
            return True
        mark.obtained_marks = obtained_marks
        mark.max_marks = question.max_marks
        mark.updated_at = datetime.now()
        return False

    # --- CO -> PO mappings --------------------------------------------------

    def get_po_mappings(self, program_id, batch_id):
        """Active CO-PO mappings of a program whose CO belongs to an active course of the batch"""
        copo = course_outcome_program_outcome
        rows = (self.session.query(copo.c.program_outcome_id, copo.c.level, CourseOutcome, Course)
                .select_from(copo)
                .join(CourseOutcome, CourseOutcome.id == copo.c.course_outcome_id)
                .join(Course, Course.id == CourseOutcome.course_id)
                .join(ProgramOutcome, ProgramOutcome.id == copo.c.program_outcome_id)
                .filter(copo.c.is_active.is_(True),
                        ProgramOutcome.program_id == program_id,
                        CourseOutcome.is_active.is_(True),
                        Course.batch_id == batch_id,
                        Course.is_active.is_(True))
                .order_by(Course.code, CourseOutcome.code)
                .all())
        return [MappingRow(*row) for row in rows]

    # --- Indirect attainment and weights ---------------------------------

    def get_indirect_attainments(self, program_id, batch_id):
        rows = self.session.query(IndirectAttainment).filter_by(program_id=program_id, batch_id=batch_id).all()
        return {row.po_id: row for row in rows}

    def get_weight_config(self, program_id, batch_id):
        return self.session.query(AttainmentWeightConfig).filter_by(
            program_id=program_id, batch_id=batch_id).first()

    def save_indirect_attainments(self, program_id, batch_id, values, source=None):
        """Upsert {po_id: value} for a program batch (not committed)"""
        existing = self.get_indirect_attainments(program_id, batch_id)
        for po_id, value in values.items():
            row = existing.get(po_id)
            if row is None:
                self.session.add(IndirectAttainment(
                    program_id=program_id, batch_id=batch_id, po_id=po_id, value=value, source=source))
            else:
                row.value = value
                row.source = source
                row.updated_at = datetime.now()

    def save_weight_config(self, program_id, batch_id, direct_weight, indirect_weight):
        config = self.get_weight_config(program_id, batch_id)
        if config is None:
            config = AttainmentWeightConfig(program_id=program_id, batch_id=batch_id)
            self.session.add(config)
        config.direct_weight = direct_weight
        config.indirect_weight = indirect_weight
        config.updated_at = datetime.now()
        return config

    # --- Snapshots ---------------------------------------------------------

    def replace_co_attainment_snapshots(self, co_ids, academic_year, section_id, snapshots):
        """Delete-then-insert the snapshots of the given COs for one academic year and scope.

        Runs as a single transaction; on failure the session is rolled back
        and the exception re-raised.
        """
        try:
            query = self.session.query(COAttainment).filter(
                COAttainment.co_id.in_(list(co_ids)),
                COAttainment.academic_year == academic_year)
            if section_id is None:
                query = query.filter(COAttainment.section_id.is_(None))
            else:
                query = query.filter(COAttainment.section_id == section_id)
            deleted = query.delete(synchronize_session=False)
            self.session.add_all(snapshots)
            self.session.commit()
            logging.info(f"Replaced {deleted} CO attainment snapshots with {len(snapshots)} for year {academic_year}")
        except Exception:
            self.session.rollback()
            raise

    def get_co_attainment_snapshots(self, co_id, academic_year=None, section_id=None):
        query = self.session.query(COAttainment).filter(COAttainment.co_id == co_id)
        if academic_year:
            query = query.filter(COAttainment.academic_year == academic_year)
        if section_id is None:
            query = query.filter(COAttainment.section_id.is_(None))
        else:
            query = query.filter(COAttainment.section_id == section_id)
        return query.all()

    # --- Misc --------------------------------------------------------------

    def add_log(self, action, description):
        self.session.add(Log(action=action, description=description))

    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()
