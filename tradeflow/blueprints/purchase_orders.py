"""Purchase orders blueprint."""
from flask import Blueprint, request, jsonify, g

from tradeflow.database import get_session
from tradeflow.middleware import require_identity, require_role, current_scope
from tradeflow.models import UserRole
from tradeflow.services import purchase_order_service

purchase_orders_bp = Blueprint('purchase_orders', __name__, url_prefix='/purchase-orders')


@purchase_orders_bp.route('/', methods=['GET'])
@require_identity
def list_purchase_orders():
    result = purchase_order_service.get_purchase_orders(
        get_session(), current_scope(),
        status=request.args.get('status') or None,
        vendor_id=request.args.get('vendor_id', type=int),
        search=request.args.get('q', '').strip() or None,
        page=request.args.get('page', 1, type=int),
        per_page=request.args.get('per_page', 10, type=int),
    )
    result['items'] = [po.to_dict(include_items=False) for po in result['items']]
    return jsonify(result)


@purchase_orders_bp.route('/<int:po_id>', methods=['GET'])
@require_identity
def get_purchase_order(po_id):
    po = purchase_order_service.get_purchase_order(get_session(), po_id, current_scope())
    return jsonify(po.to_dict())


@purchase_orders_bp.route('/', methods=['POST'])
@require_identity
def create_purchase_order():
    payload = request.get_json(silent=True) or {}
    po = purchase_order_service.create_purchase_order(get_session(), g.company_id, g.user_id, payload)
    return jsonify(po.to_dict()), 201


@purchase_orders_bp.route('/<int:po_id>', methods=['PATCH'])
@require_identity
def update_purchase_order(po_id):
    payload = request.get_json(silent=True) or {}
    po = purchase_order_service.update_purchase_order(get_session(), po_id, g.company_id, g.user_id, payload)
    return jsonify(po.to_dict())


@purchase_orders_bp.route('/<int:po_id>', methods=['DELETE'])
@require_role(UserRole.ADMIN)
def delete_purchase_order(po_id):
    purchase_order_service.delete_purchase_order(get_session(), po_id, g.company_id)
    return jsonify({'status': 'deleted', 'id': po_id})
