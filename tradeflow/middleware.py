"""Middleware for identity and company context."""
import logging
from functools import wraps

from flask import session, g, jsonify

from tradeflow.database import get_session
from tradeflow.exceptions import UnauthorizedError
from tradeflow.models import AppUser, Company, UserRole
from tradeflow.services.data_scope import DataScope, build_data_scope

logger = logging.getLogger(__name__)

ROLE_LEVELS = {UserRole.SUPER_ADMIN: 3, UserRole.ADMIN: 2, UserRole.STAFF: 1}


def load_identity():
    """
    Load the current identity into g.

    The external auth layer stores ``user_id`` and ``company_id`` in the
    session. The user must be active, belong to that company, and the
    company must be active; otherwise g stays empty.
    """
    g.user = None
    g.user_id = None
    g.company_id = None
    g.user_role = None

    user_id = session.get('user_id')
    company_id = session.get('company_id')
    if not user_id or not company_id:
        return

    try:
        db_session = get_session()
        user = (
            db_session.query(AppUser)
            .join(Company, AppUser.company_id == Company.id)
            .filter(
                AppUser.id == user_id,
                AppUser.company_id == company_id,
                AppUser.active.is_(True),
                Company.active.is_(True),
            )
            .first()
        )
    except Exception as e:
        # Avoid crashing the whole app if context loading fails
        logger.error(f"Error in load_identity: {e}")
        return

    if user is None:
        session.pop('company_id', None)
        return

    g.user = user
    g.user_id = user.id
    g.company_id = user.company_id
    g.user_role = user.role


def current_scope() -> DataScope:
    """DataScope for the loaded identity."""
    return build_data_scope(g.company_id, g.user_role, g.user_id)


def require_identity(f):
    """Decorator: respond 401 unless a user and company are loaded."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None or g.get('company_id') is None:
            return jsonify({'status': 'error', 'message': 'Authentication required'}), 401
        return f(*args, **kwargs)
    return decorated_function


def require_role(min_role=UserRole.STAFF):
    """
    Decorator: require a minimum role.

    Roles hierarchy: SUPER_ADMIN > ADMIN > STAFF
    """
    if not isinstance(min_role, UserRole):
        min_role = UserRole(str(min_role).upper())

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if g.get('user') is None or g.get('company_id') is None:
                return jsonify({'status': 'error', 'message': 'Authentication required'}), 401
            if ROLE_LEVELS.get(g.user_role, 0) < ROLE_LEVELS[min_role]:
                logger.warning(
                    f"[AUTH] User {g.user_id} with role {g.user_role} denied (requires {min_role.value})"
                )
                raise UnauthorizedError(f'{min_role.value} role required')
            return f(*args, **kwargs)
        return decorated_function
    return decorator
