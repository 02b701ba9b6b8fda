from decimal import Decimal

import pytest

from attainment_repository import AttainmentRepository
from errors import InvalidConfigurationError, NotFoundError, ValidationError
from models import db, AttainmentWeightConfig, Batch, IndirectAttainment, Program
from po_attainment import (
    POAttainmentCalculator, parse_indirect_attainments, scale_to_attainment, validate_weights
)

@pytest.fixture
def calculator(app):
    return POAttainmentCalculator(AttainmentRepository(db.session))

def course_with_scores(factory, scores, code="CO1", course=None):
    """A CO whose single 10-mark question was scored as given by one student each"""
    course = course or factory.course()
    co = factory.co(course, code=code)
    question = factory.question(factory.assessment(course), 10, cos=[co])
    for score in scores:
        student = factory.student(course=course)
        factory.mark(question, student, score)
    return course, co

def by_code(result):
    return {po.po_code: po for po in result.po_attainments}

def test_single_mapping_level_cancels_out(factory, calculator):
    po1 = factory.po("PO1")
    po2 = factory.po("PO2")
    _, co = course_with_scores(factory, [8, 4])
    factory.map_co_po(co, po1, 3)
    factory.map_co_po(co, po2, 1)

    pos = by_code(calculator.calculate_program_attainment(factory.program.id, factory.batch.id))

    # 50% of students met the 60% target -> 1.5 on the 0-3 scale
    assert pos["PO1"].direct_attainment == Decimal('1.5')
    assert pos["PO2"].direct_attainment == Decimal('1.5')
    assert pos["PO1"].total_mapping_weight == 3

def test_direct_attainment_is_level_weighted_average(factory, calculator):
    po = factory.po("PO1")
    course = factory.course()
    strong = factory.co(course, code="CO1")
    weak = factory.co(course, code="CO2")
    assessment = factory.assessment(course)
    strong_question = factory.question(assessment, 10, cos=[strong])
    weak_question = factory.question(assessment, 10, cos=[weak])
    for _ in range(2):
        student = factory.student(course=course)
        factory.mark(strong_question, student, 10)
        factory.mark(weak_question, student, 1)
    factory.map_co_po(strong, po, 3)
    factory.map_co_po(weak, po, 1)

    result = calculator.calculate_program_attainment(factory.program.id, factory.batch.id)
    po_result = result.po_attainments[0]

    # strong: 100% of students met target -> 3.0, weak: nobody did -> 0.0
    assert po_result.direct_attainment == Decimal('2.25')
    assert po_result.total_mapping_weight == 4
    contributions = po_result.courses[0].co_contributions
    assert [c.co_code for c in contributions] == ["CO1", "CO2"]
    assert [c.contribution for c in contributions] == [Decimal('9'), Decimal('0')]

def test_final_blends_direct_and_stored_indirect(factory, calculator):
    po = factory.po("PO1")
    _, co = course_with_scores(factory, [10])
    factory.map_co_po(co, po, 2)
    db.session.add(IndirectAttainment(program_id=factory.program.id, batch_id=factory.batch.id,
                                      po_id=po.id, value=Decimal('2.5'), source='exit-survey'))
    db.session.commit()

    po_result = calculator.calculate_program_attainment(
        factory.program.id, factory.batch.id, default_indirect_attainment=1.0).po_attainments[0]

    assert po_result.direct_attainment == Decimal('3')
    assert po_result.indirect_attainment == Decimal('2.5')
    assert po_result.indirect_source == 'exit-survey'
    assert po_result.final_attainment == Decimal('2.90')
    assert po_result.to_dict()['finalAttainment'] == 2.9

def test_default_indirect_used_when_nothing_stored(factory, calculator):
    po = factory.po("PO1")
    _, co = course_with_scores(factory, [10])
    factory.map_co_po(co, po, 2)

    with_default = calculator.calculate_program_attainment(
        factory.program.id, factory.batch.id, default_indirect_attainment=2.0).po_attainments[0]
    without = calculator.calculate_program_attainment(factory.program.id, factory.batch.id).po_attainments[0]

    assert with_default.indirect_source == 'default'
    assert with_default.final_attainment == Decimal('2.80')
    assert without.indirect_source == 'missing'
    assert without.final_attainment == Decimal('2.40')

def test_weights_not_summing_to_one_are_rejected(factory, calculator):
    factory.po("PO1")

    with pytest.raises(InvalidConfigurationError):
        calculator.calculate_program_attainment(factory.program.id, factory.batch.id, weights=(0.7, 0.4))

@pytest.mark.parametrize("weights", [(0.7, 0.4), (1.2, -0.2), (0.5, 0.49)])
def test_validate_weights_rejects_bad_splits(weights):
    with pytest.raises(InvalidConfigurationError):
        validate_weights(*weights)

def test_validate_weights_is_exact_for_decimal_splits():
    assert validate_weights(0.7, 0.3) == (Decimal('0.7'), Decimal('0.3'))
    assert validate_weights('1', '0') == (Decimal('1'), Decimal('0'))

def test_validate_weights_rejects_non_numbers():
    with pytest.raises(ValidationError):
        validate_weights('heavy', 0.2)

def test_stored_weights_apply_when_no_override(factory, calculator):
    po = factory.po("PO1")
    _, co = course_with_scores(factory, [10])
    factory.map_co_po(co, po, 1)
    db.session.add(AttainmentWeightConfig(program_id=factory.program.id, batch_id=factory.batch.id,
                                          direct_weight=Decimal('0.5'), indirect_weight=Decimal('0.5')))
    db.session.commit()

    stored = calculator.calculate_program_attainment(factory.program.id, factory.batch.id)
    override = calculator.calculate_program_attainment(factory.program.id, factory.batch.id, weights=(1, 0))

    assert stored.direct_weight == Decimal('0.5')
    assert stored.po_attainments[0].final_attainment == Decimal('1.5')
    assert override.po_attainments[0].final_attainment == Decimal('3')

def test_po_without_mappings_has_zero_direct(factory, calculator):
    factory.po("PO1")
    factory.po("PO2")

    result = calculator.calculate_program_attainment(factory.program.id, factory.batch.id)

    for po in result.po_attainments:
        assert po.total_mapping_weight == 0
        assert po.direct_attainment == 0
        assert po.courses == []
    assert result.summary()['posWithoutMappings'] == 2

def test_no_data_co_is_listed_but_excluded(factory, calculator):
    po = factory.po("PO1")
    course, co = course_with_scores(factory, [10])
    empty = factory.co(course, code="CO2")
    factory.map_co_po(co, po, 2)
    factory.map_co_po(empty, po, 3)

    po_result = calculator.calculate_program_attainment(factory.program.id, factory.batch.id).po_attainments[0]

    assert po_result.direct_attainment == Decimal('3')
    assert po_result.total_mapping_weight == 2
    contributions = {c.co_code: c for c in po_result.courses[0].co_contributions}
    assert contributions["CO2"].has_data is False
    assert contributions["CO2"].contribution == 0

def test_inactive_and_zero_level_mappings_are_ignored(factory, calculator):
    po = factory.po("PO1")
    _, co = course_with_scores(factory, [10])
    _, other = course_with_scores(factory, [0], code="CO2")
    _, unrated = course_with_scores(factory, [0], code="CO3")
    factory.map_co_po(co, po, 2)
    factory.map_co_po(other, po, 3, active=False)
    factory.map_co_po(unrated, po, 0)

    po_result = calculator.calculate_program_attainment(factory.program.id, factory.batch.id).po_attainments[0]

    assert po_result.total_mapping_weight == 2
    assert po_result.direct_attainment == Decimal('3')

def test_target_met_counts_use_po_or_default_target(factory, calculator):
    high = factory.po("PO1", target_level=Decimal('2.9'))
    low = factory.po("PO2")
    _, co = course_with_scores(factory, [10, 6, 2])
    factory.map_co_po(co, high, 3)
    factory.map_co_po(co, low, 3)

    result = calculator.calculate_program_attainment(factory.program.id, factory.batch.id, weights=(1, 0),
                                                     default_target_level=1.5)
    pos = by_code(result)

    # 2 of 3 students met the target -> 66.67% -> 2.0
    assert pos["PO1"].target_met is False
    assert pos["PO2"].target_met is True
    assert result.summary()['targetMetCount'] == 1

def test_pos_are_ordered_naturally(factory, calculator):
    for code in ("PO10", "PO2", "PO1"):
        factory.po(code)

    result = calculator.calculate_program_attainment(factory.program.id, factory.batch.id)

    assert [po.po_code for po in result.po_attainments] == ["PO1", "PO2", "PO10"]

def test_unknown_program_or_foreign_batch_is_not_found(factory, calculator):
    factory.po("PO1")
    other_program = Program(code="ECE", name="Electronics", college_id=factory.college.id)
    db.session.add(other_program)
    db.session.flush()
    foreign_batch = Batch(name="2022-2026", program_id=other_program.id)
    db.session.add(foreign_batch)
    db.session.commit()

    with pytest.raises(NotFoundError):
        calculator.calculate_program_attainment(9999, factory.batch.id)
    with pytest.raises(NotFoundError):
        calculator.calculate_program_attainment(factory.program.id, 9999)
    with pytest.raises(NotFoundError):
        calculator.calculate_program_attainment(factory.program.id, foreign_batch.id)

def test_program_without_outcomes_is_not_found(factory, calculator):
    with pytest.raises(NotFoundError):
        calculator.calculate_program_attainment(factory.program.id, factory.batch.id)

def test_courses_from_other_batches_are_ignored(factory, calculator):
    po = factory.po("PO1")
    other_batch = Batch(name="2023-2027", program_id=factory.program.id)
    db.session.add(other_batch)
    db.session.commit()
    other_course = factory.course(batch=other_batch)
    _, co = course_with_scores(factory, [10], course=other_course)
    factory.map_co_po(co, po, 3)

    po_result = calculator.calculate_program_attainment(factory.program.id, factory.batch.id).po_attainments[0]

    assert po_result.total_mapping_weight == 0

def test_save_configuration_upserts(factory, calculator):
    po1 = factory.po("PO1")
    factory.po("PO2")

    calculator.save_configuration(factory.program.id, factory.batch.id,
                                  indirect_attainments={"PO1": 2.4}, weights=(0.7, 0.3), source='survey')
    saved = calculator.save_configuration(factory.program.id, factory.batch.id,
                                          indirect_attainments=[{"poId": po1.id, "value": 2.6}])

    rows = IndirectAttainment.query.filter_by(program_id=factory.program.id).all()
    assert len(rows) == 1
    assert rows[0].value == Decimal('2.6')
    assert saved['weights'] is None
    config = AttainmentWeightConfig.query.filter_by(batch_id=factory.batch.id).one()
    assert config.direct_weight == Decimal('0.7')

def test_save_configuration_validates_input(factory, calculator):
    factory.po("PO1")

    with pytest.raises(ValidationError):
        calculator.save_configuration(factory.program.id, factory.batch.id)
    with pytest.raises(ValidationError):
        calculator.save_configuration(factory.program.id, factory.batch.id, indirect_attainments={"PO1": 3.5})
    with pytest.raises(NotFoundError):
        calculator.save_configuration(factory.program.id, factory.batch.id, indirect_attainments={"PO7": 2})
    with pytest.raises(InvalidConfigurationError):
        calculator.save_configuration(factory.program.id, factory.batch.id, weights=(0.6, 0.6))
    assert IndirectAttainment.query.count() == 0

def test_parse_indirect_attainments_rejects_other_shapes(factory):
    po = factory.po("PO1")

    with pytest.raises(ValidationError):
        parse_indirect_attainments("PO1=2", [po])
    with pytest.raises(ValidationError):
        parse_indirect_attainments([{"poCode": "PO1"}], [po])

@pytest.mark.parametrize("percentage, expected", [(0, 0), (50, 1.5), (100, 3), (120, 3)])
def test_scale_to_attainment(percentage, expected):
    assert scale_to_attainment(percentage) == Decimal(str(expected))

@pytest.mark.parametrize("weights", [(0.9995, 0.0005), ('0.1234', '0.8766')])
def test_weights_finer_than_storage_are_rejected(weights):
    with pytest.raises(InvalidConfigurationError):
        validate_weights(*weights)

@pytest.mark.parametrize("weights", [('NaN', 0), (float('nan'), 1), ('Infinity', 0), (1, float('-inf'))])
def test_non_finite_weights_are_rejected(weights):
    with pytest.raises(ValidationError):
        validate_weights(*weights)

@pytest.mark.parametrize("value", ['NaN', float('nan'), float('inf'), '-Infinity'])
def test_non_finite_indirect_values_are_rejected(factory, value):
    po = factory.po("PO1")

    with pytest.raises(ValidationError):
        parse_indirect_attainments({"PO1": value}, [po])

def test_saved_weights_read_back_unchanged(factory, calculator):
    po = factory.po("PO1")
    _, co = course_with_scores(factory, [10])
    factory.map_co_po(co, po, 1)

    calculator.save_configuration(factory.program.id, factory.batch.id, weights=('0.125', '0.875'))
    result = calculator.calculate_program_attainment(factory.program.id, factory.batch.id)

    assert (result.direct_weight, result.indirect_weight) == (Decimal('0.125'), Decimal('0.875'))
