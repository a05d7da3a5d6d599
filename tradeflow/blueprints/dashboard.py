"""Dashboard blueprint."""
from flask import Blueprint, jsonify

from tradeflow.database import get_session
from tradeflow.middleware import require_identity, current_scope
from tradeflow.services.dashboard_service import get_dashboard_counts

dashboard_bp = Blueprint('dashboard', __name__, url_prefix='/dashboard')


@dashboard_bp.route('/', methods=['GET'])
@require_identity
def index():
    """Document counts for the caller's scope (cached)."""
    return jsonify(get_dashboard_counts(get_session(), current_scope()))
