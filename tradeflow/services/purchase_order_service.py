"""Purchase order service - numbering, GST totals and the PURCHASE ledger entry."""
import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tradeflow.exceptions import NotFoundError, ValidationError, ConflictError
from tradeflow.models import (
    PurchaseOrder, PurchaseOrderItem, PurchaseOrderStatus, Party,
    DocumentKind, EventKind, EventStatus, EntryReferenceType
)
from tradeflow.models.status import ensure_transition, parse_status
from tradeflow.services.concurrency import lock_for_update, run_with_retry
from tradeflow.services.data_scope import DataScope
from tradeflow.services.dashboard_service import invalidate_dashboard
from tradeflow.services.event_dispatcher import record_event, dispatch_events, discard_events
from tradeflow.services.ledger_projector import delete_entries_by_reference
from tradeflow.services.sequence_service import next_number
from tradeflow.utils.dates import parse_date
from tradeflow.utils.number_format import parse_amount, to_money, blank_to_none
from tradeflow.utils.settings import get_setting

logger = logging.getLogger(__name__)

DEFAULT_GST_RATE = Decimal('6')
INITIAL_STATUSES = {PurchaseOrderStatus.DRAFT, PurchaseOrderStatus.PENDING}


def _parse_rate(value, field) -> Decimal:
    if value is None or value == '':
        return DEFAULT_GST_RATE
    return parse_amount(value, field, allow_zero=True)


def build_items(items: Iterable[dict]) -> List[PurchaseOrderItem]:
    """Validate raw item dicts; amount defaults to quantity x rate."""
    built = []
    for index, item in enumerate(items or [], start=1):
        description = blank_to_none(item.get('item_description') or item.get('description'))
        if not description:
            raise ValidationError(f"Item {index}: description is required")
        quantity = parse_amount(item.get('quantity'), f'Item {index} quantity')
        rate = parse_amount(item.get('rate'), f'Item {index} rate', allow_zero=True)
        amount = item.get('amount')
        amount = to_money(quantity * rate) if amount in (None, '') else parse_amount(amount, f'Item {index} amount', allow_zero=True)
        built.append(PurchaseOrderItem(
            line_number=item.get('line_number') or index,
            item_description=description,
            unit=blank_to_none(item.get('unit')),
            quantity=quantity,
            rate=rate,
            amount=amount,
        ))
    if not built:
        raise ValidationError("A purchase order needs at least one item")
    return built


def calculate_totals(items: Iterable, cgst_rate=DEFAULT_GST_RATE, sgst_rate=DEFAULT_GST_RATE) -> dict:
    """
    GST totals for a list of items (PurchaseOrderItem or dicts).

    sub_total = sum(amount or quantity x rate); cgst/sgst are percentages of it.
    """
    sub_total = Decimal('0')
    for item in items:
        if isinstance(item, dict):
            amount = item.get('amount')
            if amount in (None, ''):
                amount = Decimal(str(item.get('quantity', 0))) * Decimal(str(item.get('rate', 0)))
        else:
            amount = item.amount
        sub_total += Decimal(str(amount))

    cgst_amount = sub_total * Decimal(str(cgst_rate)) / 100
    sgst_amount = sub_total * Decimal(str(sgst_rate)) / 100
    return {
        'sub_total': to_money(sub_total),
        'cgst_amount': to_money(cgst_amount),
        'sgst_amount': to_money(sgst_amount),
        'total_amount': to_money(sub_total + cgst_amount + sgst_amount),
    }


def _resolve_vendor(session: Session, company_id: int, payload: dict):
    vendor_id = payload.get('vendor_id')
    vendor_name = blank_to_none(payload.get('vendor_name') or payload.get('supplier_name'))
    if vendor_id:
        vendor = session.query(Party).filter(Party.id == vendor_id, Party.company_id == company_id).first()
        if vendor is None:
            raise NotFoundError(f"Vendor {vendor_id} not found")
        vendor_name = vendor_name or vendor.company_name
    if not vendor_name:
        raise ValidationError("vendor_name is required")
    return vendor_id, vendor_name


def create_purchase_order(session: Session, company_id: int, user_id: Optional[int], payload: dict) -> PurchaseOrder:
    """
    Create a purchase order numbered PO-YYYYMM-NNNN (per company) unless
    the caller supplies a number. The PURCHASE ledger entry is projected
    after commit.
    """
    build_items(payload.get('items'))
    cgst_rate = _parse_rate(payload.get('cgst_rate'), 'cgst_rate')
    sgst_rate = _parse_rate(payload.get('sgst_rate'), 'sgst_rate')
    po_date = parse_date(payload.get('po_date'), 'po_date') or date.today()
    delivery_date = parse_date(payload.get('delivery_date'), 'delivery_date')
    status = parse_status(PurchaseOrderStatus, payload.get('status') or PurchaseOrderStatus.DRAFT)
    if status not in INITIAL_STATUSES:
        raise ValidationError(f"A purchase order cannot start as {status.value}")
    supplied_number = blank_to_none(payload.get('po_number'))

    def _op():
        try:
            vendor_id, vendor_name = _resolve_vendor(session, company_id, payload)
            items = build_items(payload.get('items'))
            po = PurchaseOrder(
                company_id=company_id,
                po_number=supplied_number or next_number(session, DocumentKind.PURCHASE_ORDER, company_id),
                po_date=po_date,
                delivery_date=delivery_date,
                vendor_id=vendor_id,
                vendor_name=vendor_name,
                currency=(payload.get('currency') or get_setting('BASE_CURRENCY', 'INR')).upper(),
                cgst_rate=cgst_rate,
                sgst_rate=sgst_rate,
                status=status,
                notes=blank_to_none(payload.get('notes')),
                created_by=user_id,
                updated_by=user_id,
                items=items,
                **calculate_totals(items, cgst_rate, sgst_rate)
            )
            session.add(po)
            session.flush()
            event_id = record_event(session, company_id, EventKind.PURCHASE_ORDER_CREATED, po.id, user_id).id
            session.commit()
            return po, event_id
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError(f"Purchase order number {supplied_number or '(generated)'} already exists") from exc
        except Exception:
            session.rollback()
            raise

    po, event_id = run_with_retry(
        session, _op, operation='create_purchase_order',
        attempts=get_setting('SEQUENCE_RETRY_ATTEMPTS', 5),
        backoff_base=get_setting('SEQUENCE_RETRY_BACKOFF', 0.05),
    )
    logger.info(f"[PO] Created {po.po_number} for {po.vendor_name}: {po.total_amount}")
    dispatch_events(session, [event_id])
    invalidate_dashboard(company_id)
    return po


def _lock_purchase_order(session: Session, po_id: int, company_id: int) -> PurchaseOrder:
    po = lock_for_update(
        session.query(PurchaseOrder).filter(PurchaseOrder.id == po_id, PurchaseOrder.company_id == company_id)
    ).first()
    if po is None:
        raise NotFoundError(f"Purchase order {po_id} not found")
    return po


def update_purchase_order(session: Session, po_id: int, company_id: int, user_id: Optional[int],
                          payload: dict) -> PurchaseOrder:
    """
    Edit a purchase order. Never renumbers. When the total changes, the old
    PURCHASE entry is removed and the order is projected again.
    """
    event_id = None
    try:
        po = _lock_purchase_order(session, po_id, company_id)
        old_total = po.total_amount

        if 'vendor_id' in payload or 'vendor_name' in payload:
            po.vendor_id, po.vendor_name = _resolve_vendor(session, company_id, {
                'vendor_id': payload.get('vendor_id', po.vendor_id),
                'vendor_name': payload.get('vendor_name', po.vendor_name),
            })
        if 'po_date' in payload:
            po.po_date = parse_date(payload['po_date'], 'po_date', required=True)
        if 'delivery_date' in payload:
            po.delivery_date = parse_date(payload['delivery_date'], 'delivery_date')
        if 'notes' in payload:
            po.notes = blank_to_none(payload['notes'])
        if 'cgst_rate' in payload:
            po.cgst_rate = _parse_rate(payload['cgst_rate'], 'cgst_rate')
        if 'sgst_rate' in payload:
            po.sgst_rate = _parse_rate(payload['sgst_rate'], 'sgst_rate')
        if 'items' in payload:
            po.items = build_items(payload['items'])
        if 'status' in payload:
            target = parse_status(PurchaseOrderStatus, payload['status'])
            if ensure_transition('purchase order', po.status, target):
                po.status = target

        for name, value in calculate_totals(po.items, po.cgst_rate, po.sgst_rate).items():
            setattr(po, name, value)
        po.updated_by = user_id

        if po.total_amount != old_total:
            delete_entries_by_reference(session, EntryReferenceType.PURCHASE_ORDER, po.id)
            event = record_event(session, company_id, EventKind.PURCHASE_ORDER_CREATED, po.id, user_id)
            event.status = EventStatus.PENDING
            session.flush()
            event_id = event.id
        session.commit()
    except Exception:
        session.rollback()
        raise

    if event_id is not None:
        logger.info(f"[PO] {po.po_number} total changed {old_total} -> {po.total_amount}, re-projecting")
        dispatch_events(session, [event_id])
    return po


def delete_purchase_order(session: Session, po_id: int, company_id: int) -> None:
    """Delete a purchase order together with exactly its PURCHASE entries."""
    try:
        po = _lock_purchase_order(session, po_id, company_id)
        number = po.po_number
        removed = delete_entries_by_reference(session, EntryReferenceType.PURCHASE_ORDER, po.id)
        discard_events(session, EventKind.PURCHASE_ORDER_CREATED, [po.id])
        session.delete(po)
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info(f"[PO] Deleted {number} and {removed} ledger entr{'y' if removed == 1 else 'ies'}")
    invalidate_dashboard(company_id)


def get_purchase_order(session: Session, po_id: int, scope: DataScope) -> PurchaseOrder:
    po = scope.apply(session.query(PurchaseOrder), PurchaseOrder).filter(PurchaseOrder.id == po_id).first()
    if po is None:
        raise NotFoundError(f"Purchase order {po_id} not found")
    return po


def get_purchase_orders(session: Session, scope: DataScope, status=None, vendor_id: Optional[int] = None,
                        search: Optional[str] = None, page: int = 1, per_page: int = 10) -> dict:
    """Scoped listing, newest first; search over PO number and vendor name."""
    query = scope.apply(session.query(PurchaseOrder), PurchaseOrder)
    if status:
        query = query.filter(PurchaseOrder.status == parse_status(PurchaseOrderStatus, status))
    if vendor_id:
        query = query.filter(PurchaseOrder.vendor_id == vendor_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(PurchaseOrder.po_number.ilike(pattern), PurchaseOrder.vendor_name.ilike(pattern)))

    total = query.count()
    items = (
        query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
        .offset(max(page - 1, 0) * per_page)
        .limit(per_page)
        .all()
    )
    return {'items': items, 'total': total, 'page': page, 'per_page': per_page}
