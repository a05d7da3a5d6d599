"""PI invoice blueprint - drafts, confirmation into orders, cancellation."""
from flask import Blueprint, request, jsonify, g

from tradeflow.database import get_session
from tradeflow.middleware import require_identity, require_role, current_scope
from tradeflow.models import UserRole
from tradeflow.services import pi_invoice_service
from tradeflow.services.order_service import confirm_invoice_into_order

invoices_bp = Blueprint('invoices', __name__, url_prefix='/invoices')


@invoices_bp.route('/', methods=['GET'])
@require_identity
def list_invoices():
    """List PI invoices (scoped). Query: status, q, page, per_page."""
    result = pi_invoice_service.get_pi_invoices(
        get_session(), current_scope(),
        status=request.args.get('status') or None,
        search=request.args.get('q', '').strip() or None,
        page=request.args.get('page', 1, type=int),
        per_page=request.args.get('per_page', 20, type=int),
    )
    result['items'] = [invoice.to_dict(include_lines=False) for invoice in result['items']]
    return jsonify(result)


@invoices_bp.route('/ready-for-order', methods=['GET'])
@require_identity
def ready_for_order():
    """Confirmed invoices without an order."""
    invoices = pi_invoice_service.get_invoices_for_order_creation(get_session(), current_scope())
    return jsonify({'items': [invoice.to_dict(include_lines=False) for invoice in invoices]})


@invoices_bp.route('/<int:invoice_id>', methods=['GET'])
@require_identity
def get_invoice(invoice_id):
    invoice = pi_invoice_service.get_pi_invoice(get_session(), invoice_id, current_scope())
    return jsonify(invoice.to_dict())


@invoices_bp.route('/', methods=['POST'])
@require_identity
def create_invoice():
    payload = request.get_json(silent=True) or {}
    invoice = pi_invoice_service.create_pi_invoice(get_session(), g.company_id, g.user_id, payload)
    return jsonify(invoice.to_dict()), 201


@invoices_bp.route('/<int:invoice_id>/confirm', methods=['POST'])
@require_identity
def confirm_invoice(invoice_id):
    """
    Confirm an invoice into an order.

    Body (all optional): delivery_terms, booking_number, booking_date,
    way_bill_number, truck_number, payment_amount.

    Returns:
        201 with the order, 409 when the invoice already has one.
    """
    fields = request.get_json(silent=True) or {}
    order = confirm_invoice_into_order(get_session(), invoice_id, g.company_id, g.user_id, **fields)
    return jsonify(order.to_dict()), 201


@invoices_bp.route('/<int:invoice_id>/cancel', methods=['POST'])
@require_identity
def cancel_invoice(invoice_id):
    invoice = pi_invoice_service.cancel_pi_invoice(get_session(), invoice_id, g.company_id, g.user_id)
    return jsonify(invoice.to_dict(include_lines=False))


@invoices_bp.route('/<int:invoice_id>', methods=['DELETE'])
@require_role(UserRole.ADMIN)
def delete_invoice(invoice_id):
    pi_invoice_service.delete_pi_invoice(get_session(), invoice_id, g.company_id)
    return jsonify({'status': 'deleted', 'id': invoice_id})
