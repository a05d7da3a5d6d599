"""Sequences blueprint - issue document numbers for external callers."""
from flask import Blueprint, jsonify, g

from tradeflow.database import get_session
from tradeflow.middleware import require_identity, require_role
from tradeflow.models import UserRole
from tradeflow.services.sequence_service import issue_sequence_number, peek_last_value

sequences_bp = Blueprint('sequences', __name__, url_prefix='/sequences')


@sequences_bp.route('/<kind>', methods=['POST'])
@require_role(UserRole.ADMIN)
def issue(kind):
    """
    Issue the next number of ``kind`` (ORDER, PURCHASE_ORDER, SHIPMENT, PI_INVOICE).

    Returns:
        201 with the number, 503 (retryable) on lock contention.
    """
    number = issue_sequence_number(get_session(), kind, g.company_id)
    return jsonify({'kind': kind.upper(), 'number': number}), 201


@sequences_bp.route('/<kind>', methods=['GET'])
@require_identity
def peek(kind):
    return jsonify({'kind': kind.upper(), 'last_value': peek_last_value(get_session(), kind, g.company_id)})
