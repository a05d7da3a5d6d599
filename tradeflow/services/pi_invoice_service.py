"""PI invoice service - drafts, cancellation and deletion with ledger cleanup."""
import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tradeflow.exceptions import NotFoundError, ValidationError, ConflictError
from tradeflow.models import (
    PiInvoice, PiInvoiceLine, InvoiceStatus, Party, Order, Payment, PaymentReceipt,
    DocumentKind, EntryReferenceType, EventKind
)
from tradeflow.models.status import ensure_transition, parse_status
from tradeflow.services.concurrency import lock_for_update, run_with_retry
from tradeflow.services.data_scope import DataScope
from tradeflow.services.dashboard_service import invalidate_dashboard
from tradeflow.services.event_dispatcher import discard_events
from tradeflow.services.ledger_projector import delete_entries_by_references
from tradeflow.services.sequence_service import next_number
from tradeflow.utils.dates import parse_date
from tradeflow.utils.number_format import parse_amount, to_money, blank_to_none
from tradeflow.utils.settings import get_setting

logger = logging.getLogger(__name__)


def _parse_quantity(value, index: int) -> int:
    try:
        quantity = int(str(value).strip().replace(',', ''))
    except (TypeError, ValueError):
        raise ValidationError(f"Line {index}: quantity must be a whole number, got {value!r}")
    if quantity <= 0:
        raise ValidationError(f"Line {index}: quantity must be greater than zero")
    return quantity


def build_lines(lines: Iterable[dict]) -> List[PiInvoiceLine]:
    built = []
    for index, line in enumerate(lines or [], start=1):
        product_name = blank_to_none(line.get('product_name'))
        if not product_name:
            raise ValidationError(f"Line {index}: product_name is required")
        quantity = _parse_quantity(line.get('quantity'), index)
        rate = parse_amount(line.get('rate'), f'Line {index} rate', allow_zero=True)
        amount = line.get('amount')
        if amount in (None, ''):
            amount = to_money(quantity * rate)
        else:
            amount = parse_amount(amount, f'Line {index} amount', allow_zero=True)
        built.append(PiInvoiceLine(
            line_number=line.get('line_number') or index,
            product_name=product_name,
            hsn_code=blank_to_none(line.get('hsn_code')),
            packaging=blank_to_none(line.get('packaging')),
            quantity=quantity,
            unit=blank_to_none(line.get('unit')),
            rate=rate,
            amount=amount,
        ))
    if not built:
        raise ValidationError("A PI invoice needs at least one line")
    return built


def _resolve_party(session: Session, company_id: int, payload: dict):
    party_id = payload.get('party_id')
    party_name = blank_to_none(payload.get('party_name'))
    if party_id:
        party = session.query(Party).filter(Party.id == party_id, Party.company_id == company_id).first()
        if party is None:
            raise NotFoundError(f"Party {party_id} not found")
        party_name = party_name or party.company_name
    return party_id, party_name


def create_pi_invoice(session: Session, company_id: int, user_id: Optional[int], payload: dict) -> PiInvoice:
    """
    Create a draft PI invoice.

    total_amount = sum(line amounts) + charges. The number is taken from the
    payload or issued from the company's financial-year series.
    """
    build_lines(payload.get('lines'))
    charges = parse_amount(payload.get('charges') or 0, 'charges', allow_zero=True)
    advance = parse_amount(payload.get('advance_amount') or 0, 'advance_amount', allow_zero=True)
    invoice_date = parse_date(payload.get('invoice_date'), 'invoice_date') or date.today()
    supplied_number = blank_to_none(payload.get('pi_number'))

    def _op():
        try:
            party_id, party_name = _resolve_party(session, company_id, payload)
            lines = build_lines(payload.get('lines'))
            invoice = PiInvoice(
                company_id=company_id,
                pi_number=supplied_number or next_number(session, DocumentKind.PI_INVOICE, company_id, invoice_date),
                status=InvoiceStatus.DRAFT,
                party_id=party_id,
                party_name=party_name,
                currency=(payload.get('currency') or get_setting('BASE_CURRENCY', 'INR')).upper(),
                invoice_date=invoice_date,
                delivery_term=blank_to_none(payload.get('delivery_term')),
                payment_term=blank_to_none(payload.get('payment_term')),
                charges=charges,
                total_amount=to_money(sum((line.amount for line in lines), Decimal('0')) + charges),
                advance_amount=advance,
                notes=blank_to_none(payload.get('notes')),
                created_by=user_id,
                updated_by=user_id,
                lines=lines,
            )
            session.add(invoice)
            session.commit()
            return invoice
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError(f"PI number {supplied_number or '(generated)'} already exists") from exc
        except Exception:
            session.rollback()
            raise

    invoice = run_with_retry(
        session, _op, operation='create_pi_invoice',
        attempts=get_setting('SEQUENCE_RETRY_ATTEMPTS', 5),
        backoff_base=get_setting('SEQUENCE_RETRY_BACKOFF', 0.05),
    )
    logger.info(f"[INVOICE] Created {invoice.pi_number}: {invoice.total_amount} {invoice.currency}")
    invalidate_dashboard(company_id)
    return invoice


def _lock_invoice(session: Session, pi_invoice_id: int, company_id: int) -> PiInvoice:
    invoice = lock_for_update(
        session.query(PiInvoice).filter(PiInvoice.id == pi_invoice_id, PiInvoice.company_id == company_id)
    ).first()
    if invoice is None:
        raise NotFoundError(f"PI invoice {pi_invoice_id} not found")
    return invoice


def cancel_pi_invoice(session: Session, pi_invoice_id: int, company_id: int, user_id: Optional[int]) -> PiInvoice:
    try:
        invoice = _lock_invoice(session, pi_invoice_id, company_id)
        if ensure_transition('invoice', invoice.status, InvoiceStatus.CANCELLED):
            invoice.status = InvoiceStatus.CANCELLED
            invoice.updated_by = user_id
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info(f"[INVOICE] Cancelled {invoice.pi_number}")
    return invoice


def delete_pi_invoice(session: Session, pi_invoice_id: int, company_id: int) -> None:
    """
    Delete an invoice that has no order, with its payment schedule, receipts
    and every ledger entry they produced.
    """
    try:
        invoice = _lock_invoice(session, pi_invoice_id, company_id)
        if session.query(Order.id).filter(Order.pi_invoice_id == invoice.id).first():
            raise ConflictError(f"PI invoice {invoice.pi_number} has an order. Please delete the order first")

        number = invoice.pi_number
        receipt_ids = [
            row.id for row in
            session.query(PaymentReceipt.id)
            .join(Payment, PaymentReceipt.payment_id == Payment.id)
            .filter(Payment.pi_invoice_id == invoice.id)
        ]
        references = [(EntryReferenceType.PI_INVOICE, invoice.id)]
        references += [(EntryReferenceType.PAYMENT, receipt_id) for receipt_id in receipt_ids]
        removed = delete_entries_by_references(session, references)
        discard_events(session, EventKind.INVOICE_CONFIRMED, [invoice.id])
        discard_events(session, EventKind.PAYMENT_RECORDED, receipt_ids)

        if invoice.payment is not None:
            session.delete(invoice.payment)
        session.delete(invoice)
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info(f"[INVOICE] Deleted {number} and {removed} ledger entr{'y' if removed == 1 else 'ies'}")
    invalidate_dashboard(company_id)


def get_pi_invoice(session: Session, pi_invoice_id: int, scope: DataScope) -> PiInvoice:
    invoice = scope.apply(session.query(PiInvoice), PiInvoice).filter(PiInvoice.id == pi_invoice_id).first()
    if invoice is None:
        raise NotFoundError(f"PI invoice {pi_invoice_id} not found")
    return invoice


def get_pi_invoices(session: Session, scope: DataScope, status=None, search: Optional[str] = None,
                    page: int = 1, per_page: int = 20) -> dict:
    query = scope.apply(session.query(PiInvoice), PiInvoice)
    if status:
        query = query.filter(PiInvoice.status == parse_status(InvoiceStatus, status))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(PiInvoice.pi_number.ilike(pattern), PiInvoice.party_name.ilike(pattern)))

    total = query.count()
    items = (
        query.order_by(PiInvoice.created_at.desc(), PiInvoice.id.desc())
        .offset(max(page - 1, 0) * per_page)
        .limit(per_page)
        .all()
    )
    return {'items': items, 'total': total, 'page': page, 'per_page': per_page}


def get_invoices_for_order_creation(session: Session, scope: DataScope) -> list:
    """Confirmed invoices that do not have an order yet."""
    return (
        scope.apply(session.query(PiInvoice), PiInvoice)
        .outerjoin(Order, Order.pi_invoice_id == PiInvoice.id)
        .filter(PiInvoice.status == InvoiceStatus.CONFIRMED, Order.id.is_(None))
        .order_by(PiInvoice.invoice_date.desc(), PiInvoice.id.desc())
        .all()
    )
