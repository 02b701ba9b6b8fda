"""Program Outcome attainment rollup.

Direct attainment of a PO is the mapping-level weighted average of the 0-3
scaled class attainment of every CO mapped to it in the batch. The final
value blends direct and indirect (survey) attainment with a weight split
that must sum to exactly 1.
"""
import logging
from collections import OrderedDict
from decimal import Decimal, InvalidOperation

from attainment_results import COContribution, CourseContribution, POAttainment, ProgramAttainment
from co_attainment import COAttainmentCalculator, to_decimal
from errors import InvalidConfigurationError, NotFoundError, ValidationError

ZERO = Decimal('0')
ONE = Decimal('1')
THREE = Decimal('3')
HUNDRED = Decimal('100')
WEIGHT_PLACES = 3


def scale_to_attainment(percentage):
    """Convert a 0-100 class percentage to the 0-3 attainment scale"""
    return min(THREE, max(ZERO, to_decimal(percentage) / HUNDRED * THREE))


def parse_decimal(value, name):
    try:
        number = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{name} must be a number (got {value!r})")
    if not number.is_finite():
        raise ValidationError(f"{name} must be a finite number (got {value!r})")
    return number


def validate_weights(direct_weight, indirect_weight):
    """Return the weights as Decimals, rejecting any split that does not sum to exactly 1.0"""
    direct = parse_decimal(direct_weight, 'directWeight')
    indirect = parse_decimal(indirect_weight, 'indirectWeight')
    if direct < ZERO or indirect < ZERO:
        raise InvalidConfigurationError("Attainment weights must not be negative")
    # Stored as NUMERIC(4, 3); finer weights would not survive a round trip
    if direct.as_tuple().exponent < -WEIGHT_PLACES or indirect.as_tuple().exponent < -WEIGHT_PLACES:
        raise InvalidConfigurationError(f"Attainment weights allow at most {WEIGHT_PLACES} decimal places")
    if direct + indirect != ONE:
        raise InvalidConfigurationError(
            f"Sum of weights must equal 1.0 (directWeight {direct} + indirectWeight {indirect} = {direct + indirect})")
    return direct, indirect


def validate_indirect_value(value, label):
    number = parse_decimal(value, f"Indirect attainment for {label}")
    if not (ZERO <= number <= THREE):
        raise ValidationError(f"Indirect attainment for {label} must be between 0 and 3 (got {number})")
    return number


def parse_indirect_attainments(payload, program_outcomes):
    """Normalise an indirect attainment payload to {po_id: Decimal}.

    Accepts either a mapping of PO code to value, or a list of objects with
    ``poId`` or ``poCode`` and ``value``.
    """
    by_code = {po.code: po for po in program_outcomes}
    by_id = {po.id: po for po in program_outcomes}
    values = {}

    if payload is None:
        return values
    if isinstance(payload, dict):
        items = [{'poCode': code, 'value': value} for code, value in payload.items()]
    elif isinstance(payload, list):
        items = payload
    else:
        raise ValidationError("indirectAttainments must be an object or a list")

    for item in items:
        if not isinstance(item, dict) or 'value' not in item:
            raise ValidationError("Each indirect attainment needs a PO reference and a value")
        po = None
        if item.get('poId') is not None:
            try:
                po = by_id.get(int(item['poId']))
            except (TypeError, ValueError):
                po = None
        elif item.get('poCode') is not None:
            po = by_code.get(str(item['poCode']))
        if po is None:
            raise NotFoundError(f"Program outcome {item.get('poId') or item.get('poCode')} not found in this program")
        values[po.id] = validate_indirect_value(item['value'], po.code)
    return values


class POAttainmentCalculator:
    """PO attainment for a program batch over an injected repository"""

    def __init__(self, repository, co_calculator=None):
        self.repository = repository
        self.co_calculator = co_calculator or COAttainmentCalculator(repository)

    def _load_program_batch(self, program_id, batch_id):
        program = self.repository.get_program(program_id)
        if program is None:
            raise NotFoundError(f"Program {program_id} not found")
        batch = self.repository.get_batch(batch_id)
        if batch is None or batch.program_id != program.id:
            raise NotFoundError(f"Batch {batch_id} not found in program {program.code}")
        return program, batch

    def resolve_weights(self, program_id, batch_id, weights=None, default_weights=(0.8, 0.2)):
        """Explicit override, then the stored configuration, then the supplied default"""
        if weights is not None:
            return validate_weights(*weights)
        config = self.repository.get_weight_config(program_id, batch_id)
        if config is not None:
            return validate_weights(config.direct_weight, config.indirect_weight)
        return validate_weights(*default_weights)

    def calculate_program_attainment(self, program_id, batch_id, weights=None, default_weights=(0.8, 0.2),
                                     default_indirect_attainment=None, default_target_level=2.0,
                                     academic_year=None):
        program, batch = self._load_program_batch(program_id, batch_id)
        direct_weight, indirect_weight = self.resolve_weights(program.id, batch.id, weights, default_weights)

        program_outcomes = self.repository.get_program_outcomes(program.id)
        if not program_outcomes:
            raise NotFoundError(f"No Program Outcomes found for program {program.code}")

        mappings_by_po = {}
        for row in self.repository.get_po_mappings(program.id, batch.id):
            mappings_by_po.setdefault(row.po_id, []).append(row)
        indirect_rows = self.repository.get_indirect_attainments(program.id, batch.id)

        # Each CO's class attainment is computed once per rollup even when it maps to several POs
        class_cache = {}
        students_cache = {}

        def class_attainment(course, co):
            if co.id not in class_cache:
                if course.id not in students_cache:
                    students_cache[course.id] = self.repository.get_enrolled_students(course.id)
                class_cache[co.id] = self.co_calculator.class_attainment_for(
                    course, co, students_cache[course.id], academic_year)
            return class_cache[co.id]

        po_results = []
        for po in program_outcomes:
            courses = OrderedDict()
            weighted_sum = ZERO
            total_weight = 0

            for row in mappings_by_po.get(po.id, []):
                level = int(row.level or 0)
                if level <= 0:
                    logging.warning(f"Ignoring CO-PO mapping {row.course_outcome.code}->{po.code} with level {level}")
                    continue
                co_result = class_attainment(row.course, row.course_outcome)
                co_value = scale_to_attainment(co_result.percentage_meeting_target)
                has_data = co_result.has_data
                contribution = co_value * level if has_data else ZERO
                if has_data:
                    weighted_sum += contribution
                    total_weight += level

                course_entry = courses.get(row.course.id)
                if course_entry is None:
                    course_entry = CourseContribution(
                        course_id=row.course.id, course_code=row.course.code, course_name=row.course.name)
                    courses[row.course.id] = course_entry
                course_entry.co_contributions.append(COContribution(
                    co_id=row.course_outcome.id,
                    co_code=row.course_outcome.code,
                    percentage_meeting_target=co_result.percentage_meeting_target,
                    co_attainment=co_value,
                    mapping_level=level,
                    contribution=contribution,
                    has_data=has_data,
                ))

            direct = weighted_sum / Decimal(total_weight) if total_weight > 0 else ZERO

            stored = indirect_rows.get(po.id)
            if stored is not None:
                indirect, source = to_decimal(stored.value), stored.source or 'stored'
            elif default_indirect_attainment is not None:
                indirect, source = to_decimal(default_indirect_attainment), 'default'
            else:
                indirect, source = ZERO, 'missing'

            target_level = po.target_level if po.target_level is not None else default_target_level
            po_results.append(POAttainment(
                po_id=po.id,
                po_code=po.code,
                po_description=po.description,
                direct_attainment=direct,
                indirect_attainment=indirect,
                final_attainment=direct * direct_weight + indirect * indirect_weight,
                target_level=to_decimal(target_level),
                total_mapping_weight=total_weight,
                indirect_source=source,
                courses=list(courses.values()),
            ))

        logging.info(f"Calculated PO attainment for program {program.code}, batch {batch.name}: "
                     f"{len(po_results)} POs, {len(class_cache)} COs evaluated")
        return ProgramAttainment(
            program_id=program.id,
            batch_id=batch.id,
            academic_year=academic_year,
            direct_weight=direct_weight,
            indirect_weight=indirect_weight,
            po_attainments=po_results,
        )

    def save_configuration(self, program_id, batch_id, indirect_attainments=None, weights=None, source=None):
        """Persist survey-sourced indirect attainment and/or the weight split for later rollups"""
        program, batch = self._load_program_batch(program_id, batch_id)
        validated_weights = validate_weights(*weights) if weights is not None else None
        values = parse_indirect_attainments(indirect_attainments, self.repository.get_program_outcomes(program.id))
        if not values and validated_weights is None:
            raise ValidationError("Nothing to save: provide indirectAttainments and/or weights")

        try:
            if values:
                self.repository.save_indirect_attainments(program.id, batch.id, values, source)
            if validated_weights is not None:
                self.repository.save_weight_config(program.id, batch.id, *validated_weights)
            self.repository.add_log(
                "SAVE_PO_ATTAINMENT_CONFIG",
                f"Saved {len(values)} indirect attainments and "
                f"{'weights ' + '/'.join(str(w) for w in validated_weights) if validated_weights else 'no weights'} "
                f"for program {program.code}, batch {batch.name}")
            self.repository.commit()
        except Exception:
            self.repository.rollback()
            raise

        return {
            'programId': program.id,
            'batchId': batch.id,
            'indirectAttainments': {str(po_id): float(value) for po_id, value in values.items()},
            'weights': {
                'directWeight': float(validated_weights[0]),
                'indirectWeight': float(validated_weights[1]),
            } if validated_weights else None,
        }
