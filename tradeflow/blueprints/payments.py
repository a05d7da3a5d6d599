"""Payments blueprint - schedules and receipts."""
from flask import Blueprint, request, jsonify, g

from tradeflow.database import get_session
from tradeflow.middleware import require_identity, require_role, current_scope
from tradeflow.models import UserRole
from tradeflow.services import payment_service
from tradeflow.utils.dates import parse_date

payments_bp = Blueprint('payments', __name__, url_prefix='/payments')


@payments_bp.route('/', methods=['GET'])
@require_identity
def list_payments():
    """Query: status, start, end (YYYY-MM-DD, on due date)."""
    payments = payment_service.get_payments(
        get_session(), current_scope(),
        status=request.args.get('status') or None,
        start_date=parse_date(request.args.get('start'), 'start'),
        end_date=parse_date(request.args.get('end'), 'end'),
    )
    return jsonify({'items': [payment.to_dict() for payment in payments]})


@payments_bp.route('/due', methods=['GET'])
@require_identity
def due_payments():
    payments = payment_service.get_due_payments(get_session(), current_scope())
    return jsonify({'items': [payment.to_dict() for payment in payments]})


@payments_bp.route('/<int:payment_id>', methods=['GET'])
@require_identity
def get_payment(payment_id):
    payment = payment_service.get_payment(get_session(), payment_id, current_scope())
    return jsonify(payment.to_dict(include_receipts=True))


@payments_bp.route('/<int:payment_id>/receipts', methods=['POST'])
@require_identity
def record_receipt(payment_id):
    """Body: amount (required), reference, paid_at."""
    payload = request.get_json(silent=True) or {}
    receipt = payment_service.record_payment(
        get_session(), payment_id, g.company_id, g.user_id,
        payload.get('amount'),
        reference=payload.get('reference'),
        paid_at=payload.get('paid_at'),
    )
    return jsonify(receipt.to_dict()), 201


@payments_bp.route('/mark-overdue', methods=['POST'])
@require_role(UserRole.ADMIN)
def mark_overdue():
    updated = payment_service.mark_overdue_payments(get_session(), company_id=g.company_id)
    return jsonify({'updated': updated})


@payments_bp.route('/<int:payment_id>', methods=['DELETE'])
@require_role(UserRole.ADMIN)
def delete_payment(payment_id):
    payment_service.delete_payment(get_session(), payment_id, g.company_id)
    return jsonify({'status': 'deleted', 'id': payment_id})
