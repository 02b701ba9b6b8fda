import pytest

from app import create_app
from models import (
    db, College, Program, Batch, Section, Student, Course, Enrollment, Assessment, Question,
    CourseOutcome, ProgramOutcome, StudentMark, TeacherAssignment,
    course_outcome_program_outcome, question_course_outcome
)

@pytest.fixture
def app(tmp_path, monkeypatch):
    monkeypatch.setenv('LOG_FILE', str(tmp_path / 'test.log'))
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()

@pytest.fixture
def client(app):
    return app.test_client()

def auth_headers(role='ADMIN', user_id='admin-1', college_id=None, program_id=None, batch_id=None):
    headers = {'X-User-Id': str(user_id), 'X-User-Role': role}
    if college_id is not None:
        headers['X-College-Id'] = str(college_id)
    if program_id is not None:
        headers['X-Program-Id'] = str(program_id)
    if batch_id is not None:
        headers['X-Batch-Id'] = str(batch_id)
    return headers

class ObeFactory:
    """Builds small OBE datasets directly through the session"""

    def __init__(self):
        self.college = College(code="TC", name="Test College")
        db.session.add(self.college)
        db.session.flush()
        self.program = Program(code="CSE", name="Computer Science", college_id=self.college.id)
        db.session.add(self.program)
        db.session.flush()
        self.batch = Batch(name="2022-2026", program_id=self.program.id, start_year=2022, end_year=2026)
        db.session.add(self.batch)
        db.session.flush()
        self.section_a = Section(name="A", batch_id=self.batch.id)
        self.section_b = Section(name="B", batch_id=self.batch.id)
        db.session.add_all([self.section_a, self.section_b])
        db.session.commit()
        self._counter = 0

    def _next(self):
        self._counter += 1
        return self._counter

    def course(self, code=None, target=60, thresholds=(60, 75, 85), batch=None, created_by='teacher-1'):
        course = Course(code=code or f"C{self._next()}", name="Test Course",
                        batch_id=(batch or self.batch).id, created_by=created_by,
                        target_percentage=target, level1_threshold=thresholds[0],
                        level2_threshold=thresholds[1], level3_threshold=thresholds[2])
        db.session.add(course)
        db.session.commit()
        return course

    def co(self, course, code=None, **overrides):
        co = CourseOutcome(code=code or f"CO{self._next()}", description="Outcome", course_id=course.id, **overrides)
        db.session.add(co)
        db.session.commit()
        return co

    def po(self, code, program=None, target_level=None):
        po = ProgramOutcome(code=code, description=f"{code} description",
                            program_id=(program or self.program).id, target_level=target_level)
        db.session.add(po)
        db.session.commit()
        return po

    def student(self, name=None, section=None, user_id=None, course=None, enrolled=True):
        number = self._next()
        student = Student(roll_number=f"R{number:03d}", name=name or f"Student {number}",
                          batch_id=self.batch.id, section_id=section.id if section else None, user_id=user_id)
        db.session.add(student)
        db.session.flush()
        if course is not None:
            db.session.add(Enrollment(student_id=student.id, course_id=course.id, is_active=enrolled))
        db.session.commit()
        return student

    def assessment(self, course, name=None, section=None):
        assessment = Assessment(name=name or f"Assessment {self._next()}", course_id=course.id,
                                section_id=section.id if section else None, max_marks=100)
        db.session.add(assessment)
        db.session.commit()
        return assessment

    def question(self, assessment, max_marks, cos=(), number=None, active=True):
        if number is None:
            number = len(assessment.questions) + 1
        question = Question(number=number, max_marks=max_marks, assessment_id=assessment.id)
        db.session.add(question)
        db.session.flush()
        for co in cos:
            db.session.execute(question_course_outcome.insert().values(
                question_id=question.id, course_outcome_id=co.id, is_active=active))
        db.session.commit()
        return question

    def mark(self, question, student, obtained, academic_year='2024'):
        mark = StudentMark(question_id=question.id, student_id=student.id, obtained_marks=obtained,
                           max_marks=question.max_marks, academic_year=academic_year)
        db.session.add(mark)
        db.session.commit()
        return mark

    def map_co_po(self, co, po, level, active=True):
        db.session.execute(course_outcome_program_outcome.insert().values(
            course_outcome_id=co.id, program_outcome_id=po.id, level=level, is_active=active))
        db.session.commit()

    def assign_teacher(self, course, teacher_id, section=None):
        db.session.add(TeacherAssignment(course_id=course.id, teacher_id=teacher_id,
                                         section_id=section.id if section else None))
        db.session.commit()

    def two_student_course(self, scores=(15, 10), max_marks=20):
        """One course, one CO, one question; one student per entry in scores"""
        course = self.course()
        co = self.co(course, code="CO1")
        assessment = self.assessment(course)
        question = self.question(assessment, max_marks, cos=[co])
        students = []
        for score in scores:
            student = self.student(course=course, section=self.section_a)
            self.mark(question, student, score)
            students.append(student)
        return course, co, question, students

@pytest.fixture
def factory(app):
    return ObeFactory()
