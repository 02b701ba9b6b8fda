import random
import argparse
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from faker import Faker

from app import create_app
from models import (
    db, College, Program, Batch, Section, Student, Course, Enrollment, Assessment, Question,
    CourseOutcome, ProgramOutcome, StudentMark, TeacherAssignment,
    course_outcome_program_outcome, question_course_outcome
)

# Initialize Faker for generating realistic data
fake = Faker()

PROGRAM_OUTCOMES = [
    ("PO1", "Engineering knowledge: Apply the knowledge of mathematics, science and engineering fundamentals."),
    ("PO2", "Problem analysis: Identify, formulate and analyze complex engineering problems."),
    ("PO3", "Design/development of solutions: Design solutions for complex engineering problems."),
    ("PO4", "Conduct investigations of complex problems using research-based knowledge and methods."),
    ("PO5", "Modern tool usage: Create, select and apply appropriate techniques, resources and modern tools."),
    ("PO6", "The engineer and society: Apply reasoning informed by contextual knowledge."),
    ("PO7", "Environment and sustainability: Understand the impact of engineering solutions."),
    ("PO8", "Ethics: Apply ethical principles and commit to professional ethics."),
    ("PO9", "Individual and team work: Function effectively as an individual and in teams."),
    ("PO10", "Communication: Communicate effectively on complex engineering activities."),
    ("PO11", "Project management and finance: Apply engineering and management principles."),
    ("PO12", "Life-long learning: Engage in independent and life-long learning."),
]

COURSES = [
    ("CS101", "Programming Fundamentals", 70.0, (70.0, 85.0, 95.0)),
    ("CS102", "Data Structures", 60.0, (60.0, 75.0, 85.0)),
    ("MA101", "Engineering Mathematics I", 60.0, (60.0, 75.0, 85.0)),
]

ASSESSMENTS = [
    ("Mid Term", "exam", 30, [10, 10, 10]),
    ("Quiz 1", "quiz", 10, [5, 5]),
    ("End Semester", "exam", 60, [15, 15, 15, 15]),
]

def random_mark(max_marks, ability):
    """Marks skewed by a per-student ability in [0.3, 1.0], rounded to half marks"""
    raw = max(0.0, min(1.0, random.gauss(ability, 0.15))) * max_marks
    return Decimal(str(raw)).quantize(Decimal('0.5'), rounding=ROUND_HALF_UP)

def generate(students_per_section=20, academic_year=None, seed=None):
    if seed is not None:
        random.seed(seed)
        fake.seed_instance(seed)
    academic_year = academic_year or str(datetime.now().year)

    college = College(code="DEMO", name=f"{fake.last_name()} Institute of Technology")
    db.session.add(college)
    db.session.flush()

    program = Program(code="BTECH-CSE", name="B.Tech Computer Science and Engineering", college_id=college.id)
    db.session.add(program)
    db.session.flush()

    start_year = int(academic_year[:4]) - 1
    batch = Batch(name=f"{start_year}-{start_year + 4}", program_id=program.id,
                  start_year=start_year, end_year=start_year + 4)
    db.session.add(batch)
    db.session.flush()

    sections = [Section(name=name, batch_id=batch.id) for name in ("A", "B")]
    db.session.add_all(sections)
    db.session.flush()

    program_outcomes = [ProgramOutcome(code=code, description=description, program_id=program.id)
                        for code, description in PROGRAM_OUTCOMES]
    db.session.add_all(program_outcomes)
    db.session.flush()

    students = []
    for section in sections:
        for i in range(students_per_section):
            students.append(Student(
                roll_number=f"{start_year % 100}CSE{section.name}{i + 1:03d}",
                name=fake.name(),
                batch_id=batch.id,
                section_id=section.id
            ))
    db.session.add_all(students)
    db.session.flush()
    abilities = {s.id: random.uniform(0.3, 1.0) for s in students}

    mark_count = 0
    for code, name, target, thresholds in COURSES:
        course = Course(code=code, name=name, batch_id=batch.id, created_by="demo-teacher",
                        target_percentage=target, level1_threshold=thresholds[0],
                        level2_threshold=thresholds[1], level3_threshold=thresholds[2])
        db.session.add(course)
        db.session.flush()
        db.session.add(TeacherAssignment(course_id=course.id, teacher_id="demo-teacher"))
        db.session.add_all([Enrollment(student_id=s.id, course_id=course.id) for s in students])

        course_outcomes = [CourseOutcome(code=f"CO{n}", description=fake.sentence(nb_words=10), course_id=course.id)
                           for n in range(1, 5)]
        db.session.add_all(course_outcomes)
        db.session.flush()

        for co in course_outcomes:
            for po in random.sample(program_outcomes, k=random.randint(2, 4)):
                db.session.execute(course_outcome_program_outcome.insert().values(
                    course_outcome_id=co.id, program_outcome_id=po.id,
                    level=random.choice([1, 2, 3]), is_active=True))

        # Section A also sits a lab test of its own
        assessment_specs = [(a, None) for a in ASSESSMENTS] + [(("Lab Test", "lab", 20, [10, 10]), sections[0].id)]
        for (assessment_name, assessment_type, max_marks, question_marks), section_id in assessment_specs:
            assessment = Assessment(name=assessment_name, type=assessment_type, course_id=course.id,
                                    section_id=section_id, max_marks=max_marks,
                                    weightage=round(100 / len(assessment_specs), 2))
            db.session.add(assessment)
            db.session.flush()

            for number, question_max in enumerate(question_marks, start=1):
                question = Question(number=number, text=fake.sentence(), max_marks=question_max,
                                    assessment_id=assessment.id)
                db.session.add(question)
                db.session.flush()
                for co in random.sample(course_outcomes, k=random.randint(1, 2)):
                    db.session.execute(question_course_outcome.insert().values(
                        question_id=question.id, course_outcome_id=co.id, is_active=True))

                for student in students:
                    if section_id is not None and student.section_id != section_id:
                        continue
                    # A few students skip questions
                    if random.random() < 0.05:
                        continue
                    db.session.add(StudentMark(
                        question_id=question.id, student_id=student.id,
                        obtained_marks=random_mark(question_max, abilities[student.id]),
                        max_marks=question_max, academic_year=academic_year))
                    mark_count += 1

    db.session.commit()

    print("\n--- Demo Data Generation Summary ---")
    print(f"  - program {program.code} (id {program.id}), batch {batch.name} (id {batch.id})")
    print(f"  - {len(sections)} sections, {len(students)} students")
    print(f"  - {len(COURSES)} courses with 4 COs each, {len(program_outcomes)} program outcomes")
    print(f"  - {mark_count} marks for academic year {academic_year}")
    return program.id, batch.id

def main():
    parser = argparse.ArgumentParser(description='Generate demo OBE data')
    parser.add_argument('--students', type=int, default=20, help='Students per section')
    parser.add_argument('--year', default=None, help='Academic year for the generated marks')
    parser.add_argument('--seed', type=int, default=None, help='Random seed for repeatable data')
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        generate(args.students, args.year, args.seed)

if __name__ == "__main__":
    main()
