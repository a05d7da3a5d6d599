"""Orders blueprint."""
from flask import Blueprint, request, jsonify, g

from tradeflow.database import get_session
from tradeflow.exceptions import ValidationError
from tradeflow.middleware import require_identity, require_role, current_scope
from tradeflow.models import UserRole
from tradeflow.services import order_service

orders_bp = Blueprint('orders', __name__, url_prefix='/orders')


@orders_bp.route('/', methods=['GET'])
@require_identity
def list_orders():
    result = order_service.get_orders(
        get_session(), current_scope(),
        status=request.args.get('status') or None,
        search=request.args.get('q', '').strip() or None,
        page=request.args.get('page', 1, type=int),
        per_page=request.args.get('per_page', 20, type=int),
    )
    result['items'] = [order.to_dict() for order in result['items']]
    return jsonify(result)


@orders_bp.route('/<int:order_id>', methods=['GET'])
@require_identity
def get_order(order_id):
    return jsonify(order_service.get_order(get_session(), order_id, current_scope()).to_dict())


@orders_bp.route('/<int:order_id>/document', methods=['GET'])
@require_identity
def order_document(order_id):
    """View model for the printable order document."""
    return jsonify(order_service.build_order_document(get_session(), order_id, current_scope()))


@orders_bp.route('/snapshot', methods=['POST'])
@require_identity
def create_snapshot():
    """Cut a new order for an already confirmed invoice (body: pi_invoice_id plus optional fields)."""
    fields = dict(request.get_json(silent=True) or {})
    pi_invoice_id = fields.pop('pi_invoice_id', None)
    if not pi_invoice_id:
        raise ValidationError("pi_invoice_id is required")
    order = order_service.create_order_snapshot_from_invoice(
        get_session(), int(pi_invoice_id), g.company_id, g.user_id, **fields
    )
    return jsonify(order.to_dict()), 201


@orders_bp.route('/<int:order_id>', methods=['PATCH'])
@require_identity
def update_order(order_id):
    fields = request.get_json(silent=True) or {}
    order = order_service.update_order(get_session(), order_id, g.company_id, g.user_id, **fields)
    return jsonify(order.to_dict())


@orders_bp.route('/<int:order_id>/status', methods=['POST'])
@require_identity
def update_status(order_id):
    payload = request.get_json(silent=True) or {}
    order = order_service.update_order_status(
        get_session(), order_id, g.company_id, g.user_id, payload.get('status')
    )
    return jsonify(order.to_dict())


@orders_bp.route('/<int:order_id>', methods=['DELETE'])
@require_role(UserRole.ADMIN)
def delete_order(order_id):
    order_service.delete_order(get_session(), order_id, g.company_id)
    return jsonify({'status': 'deleted', 'id': order_id})
