from flask import Blueprint, current_app, jsonify, request
import logging

from po_attainment import POAttainmentCalculator
from errors import NotFoundError, ValidationError
from permissions import get_current_user, get_policy, require
from routes.attainment_routes import academic_year_arg, get_repository, int_arg, json_body

po_bp = Blueprint('po_attainment', __name__, url_prefix='/api/programs')

def load_program(repository, program_id):
    program = repository.get_program(program_id)
    if program is None:
        raise NotFoundError(f"Program {program_id} not found")
    return program

def weights_arg(direct, indirect):
    """Both weights or neither; a lone weight is a client error"""
    if direct in (None, '') and indirect in (None, ''):
        return None
    if direct in (None, '') or indirect in (None, ''):
        raise ValidationError('directWeight and indirectWeight must be supplied together')
    return direct, indirect

@po_bp.route('/<int:program_id>/po-attainment', methods=['GET'])
def get_po_attainment(program_id):
    """PO attainment for a program batch with full course/CO traceability"""
    user = get_current_user()
    batch_id = int_arg(request.args.get('batchId'), 'batchId')
    if batch_id is None:
        raise ValidationError('batchId is required')
    academic_year = academic_year_arg(request.args.get('academicYear'))
    weights = weights_arg(request.args.get('directWeight'), request.args.get('indirectWeight'))

    repository = get_repository()
    program = load_program(repository, program_id)
    require(get_policy().can_view_program_attainment(user, program),
            'Insufficient permissions to view PO attainment')

    config = current_app.config
    result = POAttainmentCalculator(repository).calculate_program_attainment(
        program.id,
        batch_id,
        weights=weights,
        default_weights=(config['DEFAULT_DIRECT_WEIGHT'], config['DEFAULT_INDIRECT_WEIGHT']),
        default_indirect_attainment=config.get('DEFAULT_INDIRECT_ATTAINMENT'),
        default_target_level=config['DEFAULT_PO_TARGET_LEVEL'],
        academic_year=academic_year
    )
    return jsonify({'success': True, 'data': result.to_dict()})

@po_bp.route('/<int:program_id>/po-attainment', methods=['POST'])
def save_po_attainment(program_id):
    """Store survey-sourced indirect attainment and the direct/indirect weight split"""
    user = get_current_user()
    data = json_body()
    batch_id = int_arg(data.get('batchId'), 'batchId')
    if batch_id is None:
        raise ValidationError('batchId is required')

    weights = data.get('weights')
    if weights is not None:
        if not isinstance(weights, dict):
            raise ValidationError('weights must be an object with directWeight and indirectWeight')
        weights = weights_arg(weights.get('directWeight'), weights.get('indirectWeight'))

    repository = get_repository()
    program = load_program(repository, program_id)
    require(get_policy().can_manage_program_attainment(user, program),
            'Only administrators and the program coordinator can save PO attainment settings')

    saved = POAttainmentCalculator(repository).save_configuration(
        program.id,
        batch_id,
        indirect_attainments=data.get('indirectAttainments'),
        weights=weights,
        source=data.get('source') or 'survey'
    )
    logging.info(f"PO attainment settings saved for program {program.code}, batch {batch_id} by user {user.id}")

    return jsonify({
        'success': True,
        'message': 'Indirect attainments saved successfully',
        'data': saved
    })
