"""Result records returned by the attainment calculators.

Numbers are kept as Decimal inside the records and converted to floats
(rounded half-up to 2 places) only when serialised with ``to_dict``.
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

TWO_PLACES = Decimal('0.01')


def round2(value):
    """Round a numeric value half-up to 2 decimal places and return a Decimal"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def as_float(value):
    return float(round2(value))


@dataclass
class StudentCOAttainment:
    student_id: int
    student_name: str
    roll_number: str
    co_id: int
    co_code: str
    percentage: Decimal
    met_target: bool
    total_obtained_marks: Decimal
    total_max_marks: Decimal
    attempted_questions: int
    total_questions: int

    @property
    def has_data(self):
        return self.total_questions > 0 and self.total_max_marks > 0

    def to_dict(self):
        return {
            'studentId': self.student_id,
            'studentName': self.student_name,
            'rollNumber': self.roll_number,
            'coId': self.co_id,
            'coCode': self.co_code,
            'percentage': as_float(self.percentage),
            'metTarget': self.met_target,
            'totalObtainedMarks': as_float(self.total_obtained_marks),
            'totalMaxMarks': as_float(self.total_max_marks),
            'attemptedQuestions': self.attempted_questions,
            'totalQuestions': self.total_questions,
        }


@dataclass
class ClassCOAttainment:
    co_id: int
    co_code: str
    co_description: str
    course_id: int
    section_id: Optional[int]
    target_percentage: Decimal
    thresholds: tuple
    percentage_meeting_target: Decimal
    students_meeting_target: int
    total_students: int
    attainment_level: int
    total_questions: int
    student_attainments: List[StudentCOAttainment] = field(default_factory=list)

    @property
    def has_data(self):
        return self.total_students > 0

    def to_dict(self, include_students=True):
        data = {
            'coId': self.co_id,
            'coCode': self.co_code,
            'coDescription': self.co_description,
            'courseId': self.course_id,
            'sectionId': self.section_id,
            'targetPercentage': as_float(self.target_percentage),
            'percentageMeetingTarget': as_float(self.percentage_meeting_target),
            'studentsMeetingTarget': self.students_meeting_target,
            'totalStudents': self.total_students,
            'attainmentLevel': self.attainment_level,
            'totalQuestions': self.total_questions,
            'hasData': self.has_data,
            'thresholds': {
                'level1': as_float(self.thresholds[0]),
                'level2': as_float(self.thresholds[1]),
                'level3': as_float(self.thresholds[2]),
            },
        }
        if include_students:
            data['studentAttainments'] = [s.to_dict() for s in self.student_attainments]
        return data


@dataclass
class CourseAttainment:
    course_id: int
    course_code: str
    course_name: str
    section_id: Optional[int]
    academic_year: Optional[str]
    co_attainments: List[ClassCOAttainment]
    total_students: int
    calculated_at: object = None

    def level_distribution(self):
        distribution = {'level0': 0, 'level1': 0, 'level2': 0, 'level3': 0, 'noData': 0}
        for co in self.co_attainments:
            if co.has_data:
                distribution[f'level{co.attainment_level}'] += 1
            else:
                distribution['noData'] += 1
        return distribution

    def average_attainment(self):
        """Mean percentage meeting target over COs that have student data, or None"""
        with_data = [co.percentage_meeting_target for co in self.co_attainments if co.has_data]
        if not with_data:
            return None
        return sum(with_data, Decimal('0')) / Decimal(len(with_data))

    def summary(self):
        average = self.average_attainment()
        return {
            'totalCOs': len(self.co_attainments),
            'cosWithData': sum(1 for co in self.co_attainments if co.has_data),
            'totalStudents': self.total_students,
            'averageAttainment': as_float(average) if average is not None else None,
            'levelDistribution': self.level_distribution(),
        }

    def to_dict(self, include_students=True):
        return {
            'courseId': self.course_id,
            'courseCode': self.course_code,
            'courseName': self.course_name,
            'sectionId': self.section_id,
            'academicYear': self.academic_year,
            'calculatedAt': self.calculated_at.isoformat() if self.calculated_at else None,
            'summary': self.summary(),
            'coAttainments': [co.to_dict(include_students=include_students) for co in self.co_attainments],
        }


@dataclass
class COContribution:
    co_id: int
    co_code: str
    percentage_meeting_target: Decimal
    co_attainment: Decimal
    mapping_level: int
    contribution: Decimal
    has_data: bool

    def to_dict(self):
        return {
            'coId': self.co_id,
            'coCode': self.co_code,
            'percentageMeetingTarget': as_float(self.percentage_meeting_target),
            'coAttainment': as_float(self.co_attainment),
            'mappingLevel': self.mapping_level,
            'contribution': as_float(self.contribution),
            'hasData': self.has_data,
        }


@dataclass
class CourseContribution:
    course_id: int
    course_code: str
    course_name: str
    co_contributions: List[COContribution] = field(default_factory=list)

    @property
    def total_contribution(self):
        return sum((c.contribution for c in self.co_contributions if c.has_data), Decimal('0'))

    def to_dict(self):
        return {
            'courseId': self.course_id,
            'courseCode': self.course_code,
            'courseName': self.course_name,
            'coContributions': [c.to_dict() for c in self.co_contributions],
            'totalContribution': as_float(self.total_contribution),
        }


@dataclass
class POAttainment:
    po_id: int
    po_code: str
    po_description: str
    direct_attainment: Decimal
    indirect_attainment: Decimal
    final_attainment: Decimal
    target_level: Decimal
    total_mapping_weight: int
    indirect_source: str
    courses: List[CourseContribution] = field(default_factory=list)

    @property
    def target_met(self):
        return round2(self.final_attainment) >= round2(self.target_level)

    def to_dict(self):
        return {
            'poId': self.po_id,
            'poCode': self.po_code,
            'poDescription': self.po_description,
            'directAttainment': as_float(self.direct_attainment),
            'indirectAttainment': as_float(self.indirect_attainment),
            'indirectSource': self.indirect_source,
            'finalAttainment': as_float(self.final_attainment),
            'targetLevel': as_float(self.target_level),
            'targetMet': self.target_met,
            'totalMappingWeight': self.total_mapping_weight,
            'courses': [c.to_dict() for c in self.courses],
        }


@dataclass
class ProgramAttainment:
    program_id: int
    batch_id: int
    academic_year: Optional[str]
    direct_weight: Decimal
    indirect_weight: Decimal
    po_attainments: List[POAttainment]

    def summary(self):
        total = len(self.po_attainments)
        if total:
            avg_direct = sum((po.direct_attainment for po in self.po_attainments), Decimal('0')) / total
            avg_final = sum((po.final_attainment for po in self.po_attainments), Decimal('0')) / total
        else:
            avg_direct = avg_final = Decimal('0')
        return {
            'totalPOs': total,
            'averageDirectAttainment': as_float(avg_direct),
            'averageFinalAttainment': as_float(avg_final),
            'targetMetCount': sum(1 for po in self.po_attainments if po.target_met),
            'posWithoutMappings': sum(1 for po in self.po_attainments if po.total_mapping_weight == 0),
        }

    def to_dict(self):
        return {
            'programId': self.program_id,
            'batchId': self.batch_id,
            'academicYear': self.academic_year,
            'weights': {
                'directWeight': float(self.direct_weight),
                'indirectWeight': float(self.indirect_weight),
            },
            'summary': self.summary(),
            'poAttainments': [po.to_dict() for po in self.po_attainments],
        }
