"""Shipments blueprint."""
from flask import Blueprint, request, jsonify, g

from tradeflow.database import get_session
from tradeflow.exceptions import ValidationError
from tradeflow.middleware import require_identity, require_role, current_scope
from tradeflow.models import UserRole
from tradeflow.services import shipment_service

shipments_bp = Blueprint('shipments', __name__, url_prefix='/shipments')


@shipments_bp.route('/', methods=['GET'])
@require_identity
def list_shipments():
    shipments = shipment_service.get_shipments(
        get_session(), current_scope(),
        status=request.args.get('status') or None,
        search=request.args.get('q', '').strip() or None,
    )
    return jsonify({'items': [shipment.to_dict() for shipment in shipments]})


@shipments_bp.route('/<int:shipment_id>', methods=['GET'])
@require_identity
def get_shipment(shipment_id):
    return jsonify(shipment_service.get_shipment(get_session(), shipment_id, current_scope()).to_dict())


@shipments_bp.route('/', methods=['POST'])
@require_identity
def create_shipment():
    fields = dict(request.get_json(silent=True) or {})
    order_id = fields.pop('order_id', None)
    if not order_id:
        raise ValidationError("order_id is required")
    shipment = shipment_service.create_shipment(get_session(), int(order_id), g.company_id, g.user_id, **fields)
    return jsonify(shipment.to_dict()), 201


@shipments_bp.route('/<int:shipment_id>', methods=['PATCH'])
@require_identity
def update_shipment(shipment_id):
    fields = request.get_json(silent=True) or {}
    shipment = shipment_service.update_shipment(get_session(), shipment_id, g.company_id, g.user_id, **fields)
    return jsonify(shipment.to_dict())


@shipments_bp.route('/<int:shipment_id>/status', methods=['POST'])
@require_identity
def update_status(shipment_id):
    payload = request.get_json(silent=True) or {}
    shipment = shipment_service.update_shipment_status(
        get_session(), shipment_id, g.company_id, g.user_id, payload.get('status')
    )
    return jsonify(shipment.to_dict())


@shipments_bp.route('/<int:shipment_id>', methods=['DELETE'])
@require_role(UserRole.ADMIN)
def delete_shipment(shipment_id):
    shipment_service.delete_shipment(get_session(), shipment_id, g.company_id)
    return jsonify({'status': 'deleted', 'id': shipment_id})
