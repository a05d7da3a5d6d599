"""
Dashboard service.
Per-company counts of the main documents, cached in Redis for a short TTL.
"""
import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from tradeflow.models import Party, PiInvoice, Order, Shipment, PurchaseOrder, Payment, PaymentStatus
from tradeflow.services.cache_service import get_cache
from tradeflow.services.data_scope import DataScope
from tradeflow.utils.settings import get_setting

logger = logging.getLogger(__name__)

CACHE_MODULE = 'dashboard'


def _count(session: Session, model, scope: DataScope, *criteria) -> int:
    query = scope.apply(session.query(func.count(model.id)), model)
    if criteria:
        query = query.filter(*criteria)
    return query.scalar() or 0


def load_dashboard_counts(session: Session, scope: DataScope) -> dict:
    """Uncached counts, already filtered by the caller's scope."""
    return {
        'parties': _count(session, Party, scope),
        'pi_invoices': _count(session, PiInvoice, scope),
        'orders': _count(session, Order, scope),
        'shipments': _count(session, Shipment, scope),
        'purchase_orders': _count(session, PurchaseOrder, scope),
        'open_payments': _count(
            session, Payment, scope,
            Payment.status.in_([PaymentStatus.PENDING, PaymentStatus.PARTIAL, PaymentStatus.OVERDUE])
        ),
    }


def _cache_key(scope: DataScope) -> str:
    if scope.restrict_to_creator:
        return f'counts:user:{scope.user_id}'
    return 'counts:all'


def get_dashboard_counts(session: Session, scope: DataScope) -> dict:
    """Cached dashboard counts for the scope."""
    loader = lambda: load_dashboard_counts(session, scope)
    try:
        cache = get_cache()
    except RuntimeError:
        return loader()
    return cache.memoize(
        scope.company_id, CACHE_MODULE, _cache_key(scope), loader,
        ttl=get_setting('CACHE_DASHBOARD_TTL', 300)
    )


def invalidate_dashboard(company_id: Optional[int]) -> None:
    """
    Drop the company's cached counts after a mutation.

    Best-effort: a failure is logged and the TTL bounds how stale reads get.
    """
    if company_id is None:
        return
    try:
        get_cache().invalidate_module(company_id, CACHE_MODULE)
    except Exception as e:
        logger.warning(f"[CACHE] Dashboard invalidation failed for company {company_id}: {e}")
