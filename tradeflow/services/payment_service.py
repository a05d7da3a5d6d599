"""Payment service: receipts against PI invoice payment schedules."""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from tradeflow.exceptions import NotFoundError, ValidationError, BusinessLogicError
from tradeflow.models import (
    Payment, PaymentReceipt, PaymentStatus, Order, EntryReferenceType, EventKind
)
from tradeflow.models.status import ensure_transition, parse_status
from tradeflow.services.concurrency import lock_for_update
from tradeflow.services.data_scope import DataScope
from tradeflow.services.dashboard_service import invalidate_dashboard
from tradeflow.services.event_dispatcher import record_event, dispatch_events, discard_events
from tradeflow.services.ledger_projector import delete_entries_by_references
from tradeflow.utils.dates import parse_datetime
from tradeflow.utils.number_format import parse_amount, blank_to_none

logger = logging.getLogger(__name__)


def _sync_order_payment_status(session: Session, payment: Payment) -> None:
    order = session.query(Order).filter(Order.pi_invoice_id == payment.pi_invoice_id).first()
    if order is not None:
        order.payment_status = payment.status


def _lock_payment(session: Session, payment_id: int, company_id: int) -> Payment:
    payment = lock_for_update(
        session.query(Payment).filter(Payment.id == payment_id, Payment.company_id == company_id)
    ).first()
    if payment is None:
        raise NotFoundError(f"Payment {payment_id} not found")
    return payment


def record_payment(session: Session, payment_id: int, company_id: int, user_id: Optional[int],
                   amount, reference: Optional[str] = None,
                   paid_at: Optional[datetime] = None) -> PaymentReceipt:
    """
    Register an amount received (partial or full) against a payment schedule.

    The receipt, the updated balances, the mirrored order payment status and
    the PAYMENT_RECORDED event are committed together; the RECEIPT ledger
    entry is projected after commit.
    """
    amount = parse_amount(amount)
    paid_at = parse_datetime(paid_at, 'paid_at')

    try:
        payment = _lock_payment(session, payment_id, company_id)
        if payment.status == PaymentStatus.PAID:
            raise BusinessLogicError(f"Payment {payment_id} is already fully paid")
        if amount > payment.due_amount:
            raise ValidationError(
                f"Amount {amount} exceeds the outstanding balance {payment.due_amount}",
                payload={'due_amount': str(payment.due_amount)}
            )

        receipt = PaymentReceipt(
            payment_id=payment.id,
            amount=amount,
            reference=blank_to_none(reference),
            paid_at=paid_at or datetime.now(),
            created_by=user_id,
        )
        session.add(receipt)

        payment.paid_amount = Decimal(payment.paid_amount or 0) + amount
        payment.due_amount = Decimal(payment.due_amount) - amount
        target = PaymentStatus.PAID if payment.due_amount <= 0 else PaymentStatus.PARTIAL
        if ensure_transition('payment', payment.status, target):
            payment.status = target
        _sync_order_payment_status(session, payment)

        session.flush()
        event = record_event(session, company_id, EventKind.PAYMENT_RECORDED, receipt.id, user_id)
        event_id = event.id
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[PAYMENT] Receipt {receipt.id} of {amount} on payment {payment_id} -> {payment.status.value}")
    dispatch_events(session, [event_id])
    invalidate_dashboard(company_id)
    return receipt


def get_payment(session: Session, payment_id: int, scope: DataScope) -> Payment:
    payment = scope.apply(session.query(Payment), Payment).filter(Payment.id == payment_id).first()
    if payment is None:
        raise NotFoundError(f"Payment {payment_id} not found")
    return payment


def get_payments(session: Session, scope: DataScope, status=None,
                 start_date=None, end_date=None) -> list:
    """Scoped payment schedules, earliest due first."""
    query = scope.apply(session.query(Payment), Payment)
    if status:
        query = query.filter(Payment.status == parse_status(PaymentStatus, status))
    if start_date and end_date:
        query = query.filter(Payment.due_date >= start_date, Payment.due_date <= end_date)
    return query.order_by(Payment.due_date.asc(), Payment.id.asc()).all()


def get_due_payments(session: Session, scope: DataScope, now: Optional[datetime] = None) -> list:
    """Pending or overdue schedules whose due date has passed."""
    now = now or datetime.now()
    return (
        scope.apply(session.query(Payment), Payment)
        .filter(
            Payment.status.in_([PaymentStatus.PENDING, PaymentStatus.OVERDUE]),
            Payment.due_date <= now,
        )
        .order_by(Payment.due_date.asc())
        .all()
    )


def mark_overdue_payments(session: Session, now: Optional[datetime] = None,
                          company_id: Optional[int] = None) -> int:
    """Move pending/partial schedules past their due date to overdue."""
    now = now or datetime.now()
    try:
        query = lock_for_update(session.query(Payment).filter(
            Payment.status.in_([PaymentStatus.PENDING, PaymentStatus.PARTIAL]),
            Payment.due_date < now,
        ))
        if company_id is not None:
            query = query.filter(Payment.company_id == company_id)

        updated = 0
        touched_companies = set()
        for payment in query.all():
            if ensure_transition('payment', payment.status, PaymentStatus.OVERDUE):
                payment.status = PaymentStatus.OVERDUE
                _sync_order_payment_status(session, payment)
                touched_companies.add(payment.company_id)
                updated += 1
        session.commit()
    except Exception:
        session.rollback()
        raise

    for touched in touched_companies:
        invalidate_dashboard(touched)
    if updated:
        logger.info(f"[PAYMENT] Marked {updated} payment(s) overdue")
    return updated


def delete_payment(session: Session, payment_id: int, company_id: int) -> None:
    """Delete a schedule with its receipts and the RECEIPT entries they produced."""
    try:
        payment = _lock_payment(session, payment_id, company_id)
        receipt_ids = [receipt.id for receipt in payment.receipts]
        delete_entries_by_references(session, [(EntryReferenceType.PAYMENT, rid) for rid in receipt_ids])
        discard_events(session, EventKind.PAYMENT_RECORDED, receipt_ids)
        session.delete(payment)
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info(f"[PAYMENT] Deleted payment {payment_id} and {len(receipt_ids)} receipt(s)")
    invalidate_dashboard(company_id)
