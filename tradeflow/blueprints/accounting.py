"""Accounting blueprint - ledger, reports, manual entries and ledger repair."""
from datetime import date

from flask import Blueprint, request, jsonify, g

from tradeflow.database import get_session
from tradeflow.middleware import require_identity, require_role, current_scope
from tradeflow.models import UserRole
from tradeflow.services import reporting_service
from tradeflow.services.event_dispatcher import dispatch_pending, reconcile_confirmed_invoices
from tradeflow.services.ledger_projector import create_manual_entry
from tradeflow.utils.dates import parse_date

accounting_bp = Blueprint('accounting', __name__, url_prefix='/accounting')


def _iso_dates(report: dict) -> dict:
    return {key: value.isoformat() if isinstance(value, date) else value for key, value in report.items()}


def _window():
    return (
        parse_date(request.args.get('from'), 'from'),
        parse_date(request.args.get('to'), 'to'),
    )


@accounting_bp.route('/ledger', methods=['GET'])
@require_identity
def ledger():
    """Query: from, to, type (SALES/RECEIPT/PURCHASE/EXPENSE), party."""
    from_date, to_date = _window()
    entries = reporting_service.get_ledger(
        get_session(), current_scope(),
        from_date=from_date,
        to_date=to_date,
        entry_type=request.args.get('type') or None,
        party_name=request.args.get('party') or None,
    )
    return jsonify({'items': [entry.to_dict() for entry in entries]})


@accounting_bp.route('/profit-loss', methods=['GET'])
@require_identity
def profit_loss():
    from_date, to_date = _window()
    report = reporting_service.get_profit_loss(get_session(), current_scope(), from_date, to_date)
    return jsonify(_iso_dates(report))


@accounting_bp.route('/balance-sheet', methods=['GET'])
@require_identity
def balance_sheet():
    as_of = parse_date(request.args.get('as_of'), 'as_of')
    return jsonify(_iso_dates(reporting_service.get_balance_sheet(get_session(), current_scope(), as_of)))


@accounting_bp.route('/export', methods=['GET'])
@require_identity
def export():
    from_date, to_date = _window()
    return jsonify({'rows': reporting_service.get_export_data(get_session(), current_scope(), from_date, to_date)})


@accounting_bp.route('/entries', methods=['POST'])
@require_role(UserRole.ADMIN)
def create_entry():
    """Manual entry without a source document (defaults to EXPENSE)."""
    payload = request.get_json(silent=True) or {}
    entry = create_manual_entry(get_session(), g.company_id, g.user_id, payload)
    return jsonify(entry.to_dict()), 201


@accounting_bp.route('/replay', methods=['POST'])
@require_role(UserRole.ADMIN)
def replay():
    """Re-run pending and failed ledger projections for this company."""
    return jsonify(dispatch_pending(get_session(), company_id=g.company_id))


@accounting_bp.route('/reconcile', methods=['POST'])
@require_role(UserRole.ADMIN)
def reconcile():
    return jsonify(reconcile_confirmed_invoices(get_session(), company_id=g.company_id))
