"""
Order service: turns confirmed PI invoices into orders and payment schedules.

``confirm_invoice_into_order`` is all-or-nothing. The order, the invoice
status change, the payment schedule and the outbox event are committed
together. Ledger projection and dashboard invalidation run after the commit
and cannot undo it.
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tradeflow.exceptions import NotFoundError, ConflictError, ValidationError, InvalidTransitionError
from tradeflow.models import (
    PiInvoice, InvoiceStatus, Order, OrderStatus, Payment, PaymentStatus,
    Shipment, DocumentKind, EventKind
)
from tradeflow.models.status import ensure_transition, parse_status
from tradeflow.services.concurrency import lock_for_update, run_with_retry
from tradeflow.services.data_scope import DataScope
from tradeflow.services.dashboard_service import invalidate_dashboard
from tradeflow.services.event_dispatcher import record_event, dispatch_events
from tradeflow.services.sequence_service import next_number
from tradeflow.utils.dates import parse_date
from tradeflow.utils.number_format import parse_amount, blank_to_none
from tradeflow.utils.settings import get_setting

logger = logging.getLogger(__name__)

TEXT_FIELDS = ('delivery_terms', 'booking_number', 'way_bill_number', 'truck_number')
ORDER_FIELDS = TEXT_FIELDS + ('booking_date', 'payment_amount')


def normalize_order_fields(fields: dict) -> dict:
    """
    Validate optional order fields. Blank strings become None.

    Only keys present in ``fields`` are returned so partial updates leave the
    other columns alone.
    """
    unknown = set(fields) - set(ORDER_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown order field(s): {', '.join(sorted(unknown))}")

    normalized = {}
    for name in TEXT_FIELDS:
        if name in fields:
            normalized[name] = blank_to_none(fields[name])
    if 'booking_date' in fields:
        normalized['booking_date'] = parse_date(fields['booking_date'], 'booking_date')
    if 'payment_amount' in fields:
        raw = blank_to_none(fields['payment_amount'])
        normalized['payment_amount'] = None if raw is None else parse_amount(raw, 'payment_amount', allow_zero=True)
    return normalized


def _lock_invoice(session: Session, pi_invoice_id: int, company_id: int) -> PiInvoice:
    invoice = lock_for_update(
        session.query(PiInvoice).filter(PiInvoice.id == pi_invoice_id, PiInvoice.company_id == company_id)
    ).first()
    if invoice is None:
        raise NotFoundError(f"PI invoice {pi_invoice_id} not found")
    return invoice


def _ensure_no_order(session: Session, invoice: PiInvoice) -> None:
    existing = session.query(Order.order_number).filter(Order.pi_invoice_id == invoice.id).first()
    if existing:
        raise ConflictError(
            f"Order {existing.order_number} already exists for PI invoice {invoice.pi_number}",
            payload={'order_number': existing.order_number, 'pi_invoice_id': invoice.id}
        )


def _build_order(session: Session, invoice: PiInvoice, company_id: int, user_id: Optional[int],
                 fields: dict, payment: Optional[Payment]) -> Order:
    if not invoice.lines:
        raise ValidationError(f"PI invoice {invoice.pi_number} has no line items")

    order = Order(
        company_id=company_id,
        order_number=next_number(session, DocumentKind.ORDER, company_id),
        pi_invoice_id=invoice.id,
        pi_number=invoice.pi_number,
        total_amount=invoice.total_amount,
        product_qty=invoice.product_qty,
        delivery_terms=blank_to_none(invoice.delivery_term),
        order_status=OrderStatus.CONFIRMED,
        payment_status=payment.status if payment else PaymentStatus.PENDING,
        created_by=user_id,
        updated_by=user_id,
    )
    for name, value in fields.items():
        setattr(order, name, value)
    session.add(order)
    return order


def _retry_settings() -> dict:
    return {
        'attempts': get_setting('SEQUENCE_RETRY_ATTEMPTS', 5),
        'backoff_base': get_setting('SEQUENCE_RETRY_BACKOFF', 0.05),
    }


def _conflict_from_integrity(pi_invoice_id: int, exc: IntegrityError) -> ConflictError:
    logger.info(f"[ORDER] Unique constraint rejected a second order for PI invoice {pi_invoice_id}: {exc.orig}")
    return ConflictError(
        f"An order already exists for PI invoice {pi_invoice_id}",
        payload={'pi_invoice_id': pi_invoice_id}
    )


def confirm_invoice_into_order(session: Session, pi_invoice_id: int, company_id: int,
                               user_id: Optional[int], **fields) -> Order:
    """
    Confirm a PI invoice and create its order and payment schedule.

    Steps (one transaction): lock the invoice, refuse if an order exists,
    number and insert the order, move the invoice to confirmed, create the
    payment schedule if missing, record an INVOICE_CONFIRMED event. Then,
    after commit, project the ledger and invalidate the dashboard.

    Raises:
        NotFoundError: invoice missing or owned by another company.
        ConflictError: an order already exists for the invoice.
        InvalidTransitionError: invoice is cancelled.
        ValidationError: bad optional fields or no line items.
        SequenceContentionError: locks could not be obtained in time.
    """
    normalized = normalize_order_fields(fields)

    def _op() -> Tuple[Order, int]:
        try:
            invoice = _lock_invoice(session, pi_invoice_id, company_id)
            _ensure_no_order(session, invoice)
            needs_confirm = ensure_transition('PI invoice', invoice.status, InvoiceStatus.CONFIRMED)

            payment = session.query(Payment).filter(Payment.pi_invoice_id == invoice.id).first()
            order = _build_order(session, invoice, company_id, user_id, normalized, payment)

            if needs_confirm:
                invoice.status = InvoiceStatus.CONFIRMED
                invoice.updated_by = user_id

            if payment is None:
                total = Decimal(invoice.total_amount)
                session.add(Payment(
                    company_id=company_id,
                    pi_invoice_id=invoice.id,
                    party_id=invoice.party_id,
                    amount=total + Decimal(invoice.advance_amount or 0),
                    paid_amount=Decimal('0.00'),
                    due_amount=total,
                    due_date=datetime.now() + timedelta(days=get_setting('PAYMENT_DUE_DAYS', 30)),
                    status=PaymentStatus.PENDING,
                    created_by=user_id,
                ))

            event = record_event(session, company_id, EventKind.INVOICE_CONFIRMED, invoice.id, user_id)
            session.flush()
            event_id = event.id
            session.commit()
            return order, event_id
        except IntegrityError as exc:
            session.rollback()
            raise _conflict_from_integrity(pi_invoice_id, exc) from exc
        except Exception:
            session.rollback()
            raise

    order, event_id = run_with_retry(session, _op, operation='confirm_invoice_into_order', **_retry_settings())
    logger.info(f"[ORDER] Created order {order.order_number} from PI invoice {pi_invoice_id} (company={company_id})")

    dispatch_events(session, [event_id])
    invalidate_dashboard(company_id)
    return order


def create_order_snapshot_from_invoice(session: Session, pi_invoice_id: int, company_id: int,
                                       user_id: Optional[int], **fields) -> Order:
    """
    Create only the Order for an invoice that is already confirmed.

    No payment schedule is created and no ledger event is recorded.
    """
    normalized = normalize_order_fields(fields)

    def _op() -> Order:
        try:
            invoice = _lock_invoice(session, pi_invoice_id, company_id)
            if invoice.status != InvoiceStatus.CONFIRMED:
                raise InvalidTransitionError(
                    'PI invoice', invoice.status, InvoiceStatus.CONFIRMED,
                    message=f"PI invoice {invoice.pi_number} must be confirmed before an order snapshot"
                )
            _ensure_no_order(session, invoice)

            payment = session.query(Payment).filter(Payment.pi_invoice_id == invoice.id).first()
            order = _build_order(session, invoice, company_id, user_id, normalized, payment)
            session.commit()
            return order
        except IntegrityError as exc:
            session.rollback()
            raise _conflict_from_integrity(pi_invoice_id, exc) from exc
        except Exception:
            session.rollback()
            raise

    order = run_with_retry(session, _op, operation='create_order_snapshot', **_retry_settings())
    logger.info(f"[ORDER] Snapshot order {order.order_number} for PI invoice {pi_invoice_id}")
    invalidate_dashboard(company_id)
    return order


def _lock_order(session: Session, order_id: int, company_id: int) -> Order:
    order = lock_for_update(
        session.query(Order).filter(Order.id == order_id, Order.company_id == company_id)
    ).first()
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def update_order(session: Session, order_id: int, company_id: int, user_id: Optional[int], **fields) -> Order:
    """Fill in booking/way-bill/truck details later. Never renumbers, never touches payments."""
    normalized = normalize_order_fields(fields)
    try:
        order = _lock_order(session, order_id, company_id)
        for name, value in normalized.items():
            setattr(order, name, value)
        order.updated_by = user_id
        session.commit()
        return order
    except Exception:
        session.rollback()
        raise


def update_order_status(session: Session, order_id: int, company_id: int, user_id: Optional[int], status) -> Order:
    target = parse_status(OrderStatus, status)
    try:
        order = _lock_order(session, order_id, company_id)
        if ensure_transition('order', order.order_status, target):
            order.order_status = target
            order.updated_by = user_id
        session.commit()
        logger.info(f"[ORDER] {order.order_number} -> {target.value}")
        return order
    except Exception:
        session.rollback()
        raise


def delete_order(session: Session, order_id: int, company_id: int) -> None:
    """
    Delete an order without a shipment.

    The invoice stays confirmed and keeps its payment schedule; a new order
    can be cut with ``create_order_snapshot_from_invoice``.
    """
    try:
        order = _lock_order(session, order_id, company_id)
        if session.query(Shipment.id).filter(Shipment.order_id == order.id).first():
            raise ConflictError(f"Order {order.order_number} has a shipment; delete the shipment first")
        number = order.order_number
        session.delete(order)
        session.commit()
        logger.info(f"[ORDER] Deleted order {number}")
    except Exception:
        session.rollback()
        raise
    invalidate_dashboard(company_id)


def get_order(session: Session, order_id: int, scope: DataScope) -> Order:
    order = scope.apply(session.query(Order), Order).filter(Order.id == order_id).first()
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def get_orders(session: Session, scope: DataScope, status=None, search: Optional[str] = None,
               page: int = 1, per_page: int = 20) -> dict:
    """Scoped order listing, newest first."""
    query = scope.apply(session.query(Order), Order)
    if status:
        query = query.filter(Order.order_status == parse_status(OrderStatus, status))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Order.order_number.ilike(pattern), Order.pi_number.ilike(pattern)))

    total = query.count()
    items = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset(max(page - 1, 0) * per_page)
        .limit(per_page)
        .all()
    )
    return {'items': items, 'total': total, 'page': page, 'per_page': per_page}


def build_order_document(session: Session, order_id: int, scope: DataScope) -> dict:
    """Read-only view model (order, invoice, party, lines, shipment, payment) for an external renderer."""
    order = get_order(session, order_id, scope)
    invoice = order.pi_invoice
    party = invoice.party if invoice else None
    return {
        'order': order.to_dict(),
        'pi_invoice': invoice.to_dict(include_lines=False) if invoice else None,
        'party': {
            'id': party.id,
            'company_name': party.company_name,
            'contact_person': party.contact_person,
            'email': party.email,
            'phone': party.phone,
            'address': party.address,
        } if party else None,
        'lines': [line.to_dict() for line in invoice.lines] if invoice else [],
        'shipment': order.shipment.to_dict() if order.shipment else None,
        'payment': invoice.payment.to_dict() if invoice and invoice.payment else None,
    }
