"""
Ledger projector: derives accounting entries from business events.

Each projection is idempotent. Before writing, it checks for entries that
already reference the source document, and the unique key (reference_type,
reference_id, entry_type) backs that check when two projections race.
Amounts are always stored in the company's base currency.
"""
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import and_, or_, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tradeflow.exceptions import ValidationError
from tradeflow.models import (
    AccountingEntry, EntryType, EntryReferenceType, Company,
    PiInvoice, InvoiceStatus, PaymentReceipt, PurchaseOrder, EventKind
)
from tradeflow.models.status import parse_status
from tradeflow.blueprints.metrics import ledger_entries_projected_total
from tradeflow.utils.dates import parse_date
from tradeflow.utils.number_format import parse_amount, to_money, blank_to_none
from tradeflow.utils.settings import get_setting

logger = logging.getLogger(__name__)


def _base_currency(session: Session, company_id: int) -> str:
    company = session.get(Company, company_id)
    if company and company.base_currency:
        return company.base_currency.upper()
    return get_setting('BASE_CURRENCY', 'INR').upper()


def conversion_rate(session: Session, company_id: int, currency: Optional[str]) -> Tuple[Decimal, bool]:
    """
    Fixed rate from ``currency`` to the company's base currency.

    Returns (rate, converted). Raises ValidationError when no rate is configured.
    """
    base = _base_currency(session, company_id)
    currency = (currency or base).upper()
    if currency == base:
        return Decimal('1'), False

    rates = get_setting('EXCHANGE_RATES', {}) or {}
    rate = rates.get(currency)
    if rate is None:
        raise ValidationError(f"No exchange rate configured for {currency} -> {base}")
    return Decimal(str(rate)), True


def _already_projected(session: Session, reference_type: EntryReferenceType, reference_id: int) -> bool:
    return session.query(AccountingEntry.id).filter(
        AccountingEntry.reference_type == reference_type,
        AccountingEntry.reference_id == reference_id,
    ).first() is not None


def _write_entries(session: Session, entries: List[AccountingEntry], label: str) -> List[AccountingEntry]:
    """Insert inside a savepoint; a unique-key collision means another writer projected first."""
    savepoint = session.begin_nested()
    try:
        session.add_all(entries)
        session.flush()
        savepoint.commit()
    except IntegrityError:
        savepoint.rollback()
        logger.info(f"[LEDGER] {label} already projected concurrently, skipping")
        return []

    for entry in entries:
        ledger_entries_projected_total.labels(entry_type=entry.entry_type.value).inc()
    logger.info(f"[LEDGER] {label}: wrote {len(entries)} entr{'y' if len(entries) == 1 else 'ies'}")
    return entries


def project_invoice_confirmed(session: Session, pi_invoice_id: int) -> List[AccountingEntry]:
    """
    SALES entry for the invoice total, plus a RECEIPT entry for the advance
    when one was taken. Skipped when anything already references the invoice.
    """
    if _already_projected(session, EntryReferenceType.PI_INVOICE, pi_invoice_id):
        logger.info(f"[LEDGER] PI invoice {pi_invoice_id} already has entries, skipping")
        return []

    invoice = session.get(PiInvoice, pi_invoice_id)
    if invoice is None or invoice.status != InvoiceStatus.CONFIRMED:
        logger.warning(f"[LEDGER] PI invoice {pi_invoice_id} missing or not confirmed, nothing to project")
        return []

    rate, converted = conversion_rate(session, invoice.company_id, invoice.currency)
    suffix = f" ({invoice.currency.upper()} converted)" if converted else ''
    total = to_money(Decimal(invoice.total_amount) * rate)
    advance = to_money(Decimal(invoice.advance_amount or 0) * rate)

    common = dict(
        company_id=invoice.company_id,
        reference_type=EntryReferenceType.PI_INVOICE,
        reference_id=invoice.id,
        reference_number=invoice.pi_number,
        party_name=invoice.party_name,
        entry_date=invoice.invoice_date,
        created_by=invoice.created_by,
    )
    entries = [AccountingEntry(
        entry_type=EntryType.SALES,
        amount=total,
        description=f"Sales Invoice - {invoice.pi_number}{suffix}",
        **common
    )]
    if advance > 0:
        entries.append(AccountingEntry(
            entry_type=EntryType.RECEIPT,
            amount=advance,
            description=f"Advance Payment - {invoice.pi_number}{suffix}",
            **common
        ))

    return _write_entries(session, entries, f"PI invoice {invoice.pi_number}")


def project_payment_recorded(session: Session, receipt_id: int) -> List[AccountingEntry]:
    """RECEIPT entry for one amount received against a payment schedule."""
    if _already_projected(session, EntryReferenceType.PAYMENT, receipt_id):
        logger.info(f"[LEDGER] Payment receipt {receipt_id} already projected, skipping")
        return []

    receipt = session.get(PaymentReceipt, receipt_id)
    if receipt is None:
        logger.warning(f"[LEDGER] Payment receipt {receipt_id} not found, nothing to project")
        return []

    payment = receipt.payment
    invoice = payment.pi_invoice
    party_name = payment.party.company_name if payment.party else None
    party_name = party_name or (invoice.party_name if invoice else None)

    currency = invoice.currency if invoice else None
    rate, converted = conversion_rate(session, payment.company_id, currency)
    suffix = f" ({currency.upper()} converted)" if converted else ''

    entry = AccountingEntry(
        company_id=payment.company_id,
        entry_type=EntryType.RECEIPT,
        amount=to_money(Decimal(receipt.amount) * rate),
        description=f"Payment received - {receipt.reference or 'Cash'}{suffix}",
        reference_type=EntryReferenceType.PAYMENT,
        reference_id=receipt.id,
        reference_number=receipt.reference,
        party_name=party_name,
        entry_date=receipt.paid_at.date() if isinstance(receipt.paid_at, datetime) else date.today(),
        created_by=receipt.created_by,
    )
    return _write_entries(session, [entry], f"Payment receipt {receipt.id}")


def project_purchase_order_created(session: Session, purchase_order_id: int) -> List[AccountingEntry]:
    """PURCHASE entry for the purchase order total."""
    if _already_projected(session, EntryReferenceType.PURCHASE_ORDER, purchase_order_id):
        logger.info(f"[LEDGER] Purchase order {purchase_order_id} already projected, skipping")
        return []

    po = session.get(PurchaseOrder, purchase_order_id)
    if po is None:
        logger.warning(f"[LEDGER] Purchase order {purchase_order_id} not found, nothing to project")
        return []

    rate, converted = conversion_rate(session, po.company_id, po.currency)
    suffix = f" ({po.currency.upper()} converted)" if converted else ''

    entry = AccountingEntry(
        company_id=po.company_id,
        entry_type=EntryType.PURCHASE,
        amount=to_money(Decimal(po.total_amount) * rate),
        description=f"Purchase Order - {po.po_number}{suffix}",
        reference_type=EntryReferenceType.PURCHASE_ORDER,
        reference_id=po.id,
        reference_number=po.po_number,
        party_name=po.vendor_name,
        entry_date=po.po_date,
        created_by=po.created_by,
    )
    return _write_entries(session, [entry], f"Purchase order {po.po_number}")


PROJECTIONS = {
    EventKind.INVOICE_CONFIRMED: project_invoice_confirmed,
    EventKind.PAYMENT_RECORDED: project_payment_recorded,
    EventKind.PURCHASE_ORDER_CREATED: project_purchase_order_created,
}


def project(session: Session, event_kind, source_id: int) -> List[AccountingEntry]:
    """
    Derive zero or more entries for an event. Adds rows to the session
    (inside a savepoint) but does not commit.
    """
    kind = event_kind if isinstance(event_kind, EventKind) else EventKind(str(event_kind).upper())
    return PROJECTIONS[kind](session, source_id)


def create_manual_entry(session: Session, company_id: int, user_id: Optional[int], payload: dict) -> AccountingEntry:
    """Record an EXPENSE (or other adjustment) that has no source document."""
    entry_type = parse_status(EntryType, payload.get('entry_type') or EntryType.EXPENSE)
    amount = parse_amount(payload.get('amount'))
    entry_date = parse_date(payload.get('entry_date'), 'entry_date') or date.today()

    try:
        entry = AccountingEntry(
            company_id=company_id,
            entry_type=entry_type,
            amount=amount,
            entry_date=entry_date,
            description=blank_to_none(payload.get('description')),
            reference_type=EntryReferenceType.MANUAL,
            reference_id=None,
            reference_number=blank_to_none(payload.get('reference_number')),
            party_name=blank_to_none(payload.get('party_name')),
            created_by=user_id,
        )
        session.add(entry)
        session.commit()
        logger.info(f"[LEDGER] Manual {entry_type.value} entry {entry.id} for company {company_id}: {amount}")
        return entry
    except Exception:
        session.rollback()
        raise


def delete_entries_by_reference(session: Session, reference_type, reference_id: int) -> int:
    """Compensating delete for one source document. Runs in the caller's transaction."""
    return delete_entries_by_references(session, [(reference_type, reference_id)])


def delete_entries_by_references(session: Session, references: Iterable[Tuple]) -> int:
    """
    Delete entries for several (reference_type, reference_id) pairs in one
    statement, so a cascade of deleted documents loses its entries together.
    Does not commit.
    """
    conditions = []
    for reference_type, reference_id in references:
        if not isinstance(reference_type, EntryReferenceType):
            reference_type = EntryReferenceType(str(reference_type).upper())
        conditions.append(and_(
            AccountingEntry.reference_type == reference_type,
            AccountingEntry.reference_id == reference_id,
        ))
    if not conditions:
        return 0

    result = session.execute(
        delete(AccountingEntry)
        .where(or_(*conditions))
        .execution_options(synchronize_session=False)
    )
    logger.info(f"[LEDGER] Deleted {result.rowcount} entries for {len(conditions)} reference(s)")
    return result.rowcount
