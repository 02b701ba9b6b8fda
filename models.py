# --- START OF FILE models.py ---

from datetime import datetime
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import Index # Import Index explicitly

# Create a db instance to be initialized later
db = SQLAlchemy()

# Association tables for many-to-many relationships
# CO -> PO mapping carries the integer mapping strength used as the rollup weight
course_outcome_program_outcome = db.Table(
    'course_outcome_program_outcome',
    db.Column('course_outcome_id', db.Integer, db.ForeignKey('course_outcome.id', ondelete='CASCADE'), primary_key=True),
    db.Column('program_outcome_id', db.Integer, db.ForeignKey('program_outcome.id', ondelete='CASCADE'), primary_key=True),
    db.Column('level', db.Integer, nullable=False, default=1),
    db.Column('is_active', db.Boolean, nullable=False, default=True),
    Index('idx_co_po_co_id', 'course_outcome_id'),
    Index('idx_co_po_po_id', 'program_outcome_id'),
    Index('idx_co_po_combined', 'course_outcome_id', 'program_outcome_id')
)

# A question feeds every mapped CO with its full marks, so there is no weight column here
question_course_outcome = db.Table(
    'question_course_outcome',
    db.Column('question_id', db.Integer, db.ForeignKey('question.id', ondelete='CASCADE'), primary_key=True),
    db.Column('course_outcome_id', db.Integer, db.ForeignKey('course_outcome.id', ondelete='CASCADE'), primary_key=True),
    db.Column('is_active', db.Boolean, nullable=False, default=True),
    Index('idx_qco_q_id', 'question_id'),
    Index('idx_qco_co_id', 'course_outcome_id'),
    Index('idx_qco_combined', 'question_id', 'course_outcome_id')
)

class College(db.Model):
    """College (tenant root)"""
    __tablename__ = 'college'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), nullable=False, unique=True, index=True)
    name = db.Column(db.String(150), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now)

    programs = db.relationship('Program', backref='college', lazy=True, cascade="all, delete-orphan")

    def __repr__(self):
        return f"<College {self.code}>"

class Program(db.Model):
    """Degree program offered by a college"""
    __tablename__ = 'program'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), nullable=False, index=True)
    name = db.Column(db.String(150), nullable=False)
    college_id = db.Column(db.Integer, db.ForeignKey('college.id', ondelete='CASCADE'), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now)

    batches = db.relationship('Batch', backref='program', lazy=True, cascade="all, delete-orphan")
    program_outcomes = db.relationship('ProgramOutcome', backref='program', lazy=True, cascade="all, delete-orphan")

    __table_args__ = (
        db.UniqueConstraint('college_id', 'code', name='_college_program_code_uc'),
    )

    def __repr__(self):
        return f"<Program {self.code}>"

class Batch(db.Model):
    """Admission batch of a program (e.g. 2022-2026)"""
    __tablename__ = 'batch'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False)
    program_id = db.Column(db.Integer, db.ForeignKey('program.id', ondelete='CASCADE'), nullable=False, index=True)
    start_year = db.Column(db.Integer, nullable=True)
    end_year = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now)

    sections = db.relationship('Section', backref='batch', lazy=True, cascade="all, delete-orphan")
    courses = db.relationship('Course', backref='batch', lazy=True, cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Batch {self.name} for Program {self.program_id}>"

class Section(db.Model):
    """Section (division) of a batch"""
    __tablename__ = 'section'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(20), nullable=False)
    batch_id = db.Column(db.Integer, db.ForeignKey('batch.id', ondelete='CASCADE'), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now)

    __table_args__ = (
        db.UniqueConstraint('batch_id', 'name', name='_batch_section_name_uc'),
    )

    def __repr__(self):
        return f"<Section {self.name} for Batch {self.batch_id}>"

class Student(db.Model):
    """Student model"""
    __tablename__ = 'student'
    id = db.Column(db.Integer, primary_key=True)
    roll_number = db.Column(db.String(30), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False, index=True)
    batch_id = db.Column(db.Integer, db.ForeignKey('batch.id', ondelete='CASCADE'), nullable=False, index=True)
    section_id = db.Column(db.Integer, db.ForeignKey('section.id', ondelete='SET NULL'), nullable=True, index=True)
    user_id = db.Column(db.String(64), nullable=True, index=True) # Login account linked to this student
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    section = db.relationship('Section', backref=db.backref('students', lazy=True))
    enrollments = db.relationship('Enrollment', backref='student', lazy=True, cascade="all, delete-orphan")
    marks = db.relationship('StudentMark', backref='student', lazy=True, cascade="all, delete-orphan")

    __table_args__ = (
        db.UniqueConstraint('batch_id', 'roll_number', name='_batch_roll_number_uc'),
        Index('idx_student_batch_section', 'batch_id', 'section_id'),
    )

    def __repr__(self):
        return f"<Student {self.roll_number}: {self.name}>"

class Course(db.Model):
    """Course taught to a batch, carrying the default CO target and level thresholds"""
    __tablename__ = 'course'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), nullable=False, index=True)
    name = db.Column(db.String(150), nullable=False, index=True)
    batch_id = db.Column(db.Integer, db.ForeignKey('batch.id', ondelete='CASCADE'), nullable=False, index=True)
    created_by = db.Column(db.String(64), nullable=True, index=True) # User id of the course creator
    target_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=60.0)
    level1_threshold = db.Column(db.Numeric(5, 2), nullable=False, default=60.0)
    level2_threshold = db.Column(db.Numeric(5, 2), nullable=False, default=75.0)
    level3_threshold = db.Column(db.Numeric(5, 2), nullable=False, default=85.0)
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    assessments = db.relationship('Assessment', backref='course', lazy=True, cascade="all, delete-orphan")
    course_outcomes = db.relationship('CourseOutcome', backref='course', lazy=True, cascade="all, delete-orphan")
    enrollments = db.relationship('Enrollment', backref='course', lazy=True, cascade="all, delete-orphan")
    teacher_assignments = db.relationship('TeacherAssignment', backref='course', lazy=True, cascade="all, delete-orphan")

    __table_args__ = (
        db.UniqueConstraint('batch_id', 'code', name='_batch_course_code_uc'),
        Index('idx_course_batch_active', 'batch_id', 'is_active'),
    )

    def __repr__(self):
        return f"<Course {self.code}: {self.name}>"

class TeacherAssignment(db.Model):
    """Teacher assigned to a course, optionally for a single section"""
    __tablename__ = 'teacher_assignment'
    id = db.Column(db.Integer, primary_key=True)
    course_id = db.Column(db.Integer, db.ForeignKey('course.id', ondelete='CASCADE'), nullable=False, index=True)
    teacher_id = db.Column(db.String(64), nullable=False, index=True)
    section_id = db.Column(db.Integer, db.ForeignKey('section.id', ondelete='CASCADE'), nullable=True, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now)

    def __repr__(self):
        return f"<TeacherAssignment {self.teacher_id} on Course {self.course_id}>"

class Enrollment(db.Model):
    """Enrollment defines which students count toward a course's attainment"""
    __tablename__ = 'enrollment'
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('student.id', ondelete='CASCADE'), nullable=False, index=True)
    course_id = db.Column(db.Integer, db.ForeignKey('course.id', ondelete='CASCADE'), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.now)

    __table_args__ = (
        db.UniqueConstraint('student_id', 'course_id', name='_student_course_enrollment_uc'),
        Index('idx_enrollment_course_active', 'course_id', 'is_active'),
    )

    def __repr__(self):
        return f"<Enrollment Student {self.student_id} in Course {self.course_id}>"

class Assessment(db.Model):
    """Assessment of a course; section_id set means a section-specific assessment"""
    __tablename__ = 'assessment'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False, index=True)
    type = db.Column(db.String(30), nullable=False, default='exam')
    course_id = db.Column(db.Integer, db.ForeignKey('course.id', ondelete='CASCADE'), nullable=False, index=True)
    section_id = db.Column(db.Integer, db.ForeignKey('section.id', ondelete='SET NULL'), nullable=True, index=True)
    max_marks = db.Column(db.Numeric(10, 2), nullable=False, default=100.0)
    weightage = db.Column(db.Numeric(5, 2), nullable=False, default=0.0)
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    questions = db.relationship('Question', backref='assessment', lazy=True, cascade="all, delete-orphan",
                                order_by='Question.number')
    section = db.relationship('Section')

    __table_args__ = (
        Index('idx_assessment_course_section', 'course_id', 'section_id'),
    )

    def __repr__(self):
        return f"<Assessment {self.name} for Course {self.course_id}>"

class Question(db.Model):
    """Question model"""
    __tablename__ = 'question'
    id = db.Column(db.Integer, primary_key=True)
    number = db.Column(db.Integer, nullable=False, index=True)
    text = db.Column(db.Text, nullable=True)
    max_marks = db.Column(db.Numeric(10, 2), nullable=False)
    assessment_id = db.Column(db.Integer, db.ForeignKey('assessment.id', ondelete='CASCADE'), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    marks = db.relationship('StudentMark', backref='question', lazy=True, cascade="all, delete-orphan")
    # (relationship to course_outcomes defined via secondary table)

    __table_args__ = (
        Index('idx_question_assessment_number', 'assessment_id', 'number'),
    )

    def __repr__(self):
        return f"<Question {self.number} for Assessment {self.assessment_id}>"

class CourseOutcome(db.Model):
    """CourseOutcome model; target and thresholds fall back to the course values when unset"""
    __tablename__ = 'course_outcome'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False)
    course_id = db.Column(db.Integer, db.ForeignKey('course.id', ondelete='CASCADE'), nullable=False, index=True)
    target_percentage = db.Column(db.Numeric(5, 2), nullable=True)
    level1_threshold = db.Column(db.Numeric(5, 2), nullable=True)
    level2_threshold = db.Column(db.Numeric(5, 2), nullable=True)
    level3_threshold = db.Column(db.Numeric(5, 2), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    program_outcomes = db.relationship('ProgramOutcome', secondary=course_outcome_program_outcome,
                                      lazy='subquery', backref=db.backref('course_outcomes', lazy=True))
    questions = db.relationship('Question', secondary=question_course_outcome,
                               lazy='subquery', backref=db.backref('course_outcomes', lazy=True))

    __table_args__ = (
        Index('idx_course_outcome_course_code', 'course_id', 'code'),
    )

    @property
    def effective_target_percentage(self):
        if self.target_percentage is not None:
            return self.target_percentage
        return self.course.target_percentage

    @property
    def effective_thresholds(self):
        """(level1, level2, level3) cut points for this CO"""
        course = self.course
        return (
            self.level1_threshold if self.level1_threshold is not None else course.level1_threshold,
            self.level2_threshold if self.level2_threshold is not None else course.level2_threshold,
            self.level3_threshold if self.level3_threshold is not None else course.level3_threshold,
        )

    def __repr__(self):
        return f"<CourseOutcome {self.code} for Course {self.course_id}>"

class ProgramOutcome(db.Model):
    """ProgramOutcome model"""
    __tablename__ = 'program_outcome'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False)
    program_id = db.Column(db.Integer, db.ForeignKey('program.id', ondelete='CASCADE'), nullable=False, index=True)
    target_level = db.Column(db.Numeric(3, 2), nullable=True) # Falls back to DEFAULT_PO_TARGET_LEVEL
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        db.UniqueConstraint('program_id', 'code', name='_program_po_code_uc'),
    )

    def __repr__(self):
        return f"<ProgramOutcome {self.code}>"

class StudentMark(db.Model):
    """Marks obtained by a student on one question in one academic year"""
    __tablename__ = 'student_mark'
    id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(db.Integer, db.ForeignKey('question.id', ondelete='CASCADE'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('student.id', ondelete='CASCADE'), nullable=False, index=True)
    obtained_marks = db.Column(db.Numeric(10, 2), nullable=False)
    max_marks = db.Column(db.Numeric(10, 2), nullable=False)
    academic_year = db.Column(db.String(20), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        db.UniqueConstraint('question_id', 'student_id', 'academic_year', name='_question_student_year_uc'),
        Index('idx_student_mark_question_student', 'question_id', 'student_id'),
    )

    def __repr__(self):
        return f"<StudentMark {self.obtained_marks}/{self.max_marks} for Student {self.student_id} on Question {self.question_id}>"

class COAttainment(db.Model):
    """Materialized CO attainment snapshot.

    Class-level rows have student_id NULL; per-student rows carry the student.
    section_id NULL means the snapshot covers the whole course.
    """
    __tablename__ = 'co_attainment'
    id = db.Column(db.Integer, primary_key=True)
    co_id = db.Column(db.Integer, db.ForeignKey('course_outcome.id', ondelete='CASCADE'), nullable=False, index=True)
    course_id = db.Column(db.Integer, db.ForeignKey('course.id', ondelete='CASCADE'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('student.id', ondelete='CASCADE'), nullable=True, index=True)
    section_id = db.Column(db.Integer, db.ForeignKey('section.id', ondelete='CASCADE'), nullable=True, index=True)
    academic_year = db.Column(db.String(20), nullable=False, index=True)
    percentage = db.Column(db.Numeric(6, 2), nullable=False, default=0)
    met_target = db.Column(db.Boolean, nullable=True)
    students_meeting_target = db.Column(db.Integer, nullable=True)
    total_students = db.Column(db.Integer, nullable=True)
    attainment_level = db.Column(db.Integer, nullable=True)
    calculated_at = db.Column(db.DateTime, default=datetime.now)

    __table_args__ = (
        Index('idx_co_attainment_scope', 'co_id', 'academic_year', 'section_id', 'student_id'),
    )

    def __repr__(self):
        return f"<COAttainment CO {self.co_id} {self.academic_year}: {self.percentage}%>"

class IndirectAttainment(db.Model):
    """Survey-sourced (indirect) attainment of a PO for a program batch, on the 0-3 scale"""
    __tablename__ = 'indirect_attainment'
    id = db.Column(db.Integer, primary_key=True)
    program_id = db.Column(db.Integer, db.ForeignKey('program.id', ondelete='CASCADE'), nullable=False, index=True)
    batch_id = db.Column(db.Integer, db.ForeignKey('batch.id', ondelete='CASCADE'), nullable=False, index=True)
    po_id = db.Column(db.Integer, db.ForeignKey('program_outcome.id', ondelete='CASCADE'), nullable=False, index=True)
    value = db.Column(db.Numeric(4, 2), nullable=False)
    source = db.Column(db.String(50), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        db.UniqueConstraint('program_id', 'batch_id', 'po_id', name='_indirect_program_batch_po_uc'),
    )

    def __repr__(self):
        return f"<IndirectAttainment PO {self.po_id} Batch {self.batch_id}: {self.value}>"

class AttainmentWeightConfig(db.Model):
    """Direct/indirect weight split used for the final PO attainment of a program batch"""
    __tablename__ = 'attainment_weight_config'
    id = db.Column(db.Integer, primary_key=True)
    program_id = db.Column(db.Integer, db.ForeignKey('program.id', ondelete='CASCADE'), nullable=False, index=True)
    batch_id = db.Column(db.Integer, db.ForeignKey('batch.id', ondelete='CASCADE'), nullable=False, index=True)
    direct_weight = db.Column(db.Numeric(4, 3), nullable=False)
    indirect_weight = db.Column(db.Numeric(4, 3), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        db.UniqueConstraint('program_id', 'batch_id', name='_weight_program_batch_uc'),
    )

    def __repr__(self):
        return f"<AttainmentWeightConfig {self.direct_weight}/{self.indirect_weight} Batch {self.batch_id}>"

class Log(db.Model):
    """Log model"""
    __tablename__ = 'log'
    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(50), nullable=False, index=True) # Indexed
    description = db.Column(db.Text, nullable=False)
    timestamp = db.Column(db.DateTime, default=datetime.now, index=True) # Indexed

    def __repr__(self):
        return f"<Log {self.action} at {self.timestamp}>"

# --- END OF FILE models.py ---
