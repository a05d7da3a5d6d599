"""
Outbox dispatch for ledger projection.

Business operations record a DomainEvent in their own transaction. After
they commit, the events are handed to the ledger projector one by one, each
in its own transaction. A failed projection never undoes the business write:
the event is marked FAILED, logged, reported to Sentry and counted in
Prometheus so it can be replayed with ``flask ledger-replay``.
"""
import logging
from datetime import datetime
from typing import Iterable, List, Optional

import sentry_sdk
from sqlalchemy import and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tradeflow.models import (
    DomainEvent, EventKind, EventStatus, PiInvoice, InvoiceStatus,
    AccountingEntry, EntryType, EntryReferenceType
)
from tradeflow.services import ledger_projector
from tradeflow.blueprints.metrics import ledger_projection_failures_total

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 2000


def record_event(session: Session, company_id: int, kind: EventKind, source_id: int,
                 user_id: Optional[int] = None) -> DomainEvent:
    """
    Add an outbox row inside the caller's transaction (no commit).

    Idempotent per (kind, source_id): an existing row is returned as is.
    """
    existing = session.query(DomainEvent).filter(
        DomainEvent.kind == kind, DomainEvent.source_id == source_id
    ).first()
    if existing:
        return existing

    event = DomainEvent(
        company_id=company_id, kind=kind, source_id=source_id,
        status=EventStatus.PENDING, attempts=0, created_by=user_id
    )
    session.add(event)
    session.flush()
    logger.debug(f"[OUTBOX] Recorded {kind.value} for source {source_id}")
    return event


def discard_events(session: Session, kind: EventKind, source_ids: Iterable[int]) -> int:
    """Drop outbox rows whose source document is being deleted (no commit)."""
    source_ids = list(source_ids)
    if not source_ids:
        return 0
    return session.query(DomainEvent).filter(
        DomainEvent.kind == kind, DomainEvent.source_id.in_(source_ids)
    ).delete(synchronize_session=False)


def _mark_failed(session: Session, event_id: int, exc: Exception) -> None:
    try:
        event = session.get(DomainEvent, event_id)
        if event is None:
            return
        event.status = EventStatus.FAILED
        event.attempts = (event.attempts or 0) + 1
        event.last_error = f"{exc.__class__.__name__}: {exc}"[:MAX_ERROR_LENGTH]
        session.commit()
    except SQLAlchemyError as mark_exc:
        session.rollback()
        logger.error(f"[OUTBOX] Could not mark event {event_id} as FAILED: {mark_exc}")


def dispatch_event(session: Session, event_id: int) -> bool:
    """
    Project one event and mark it PROCESSED in a single transaction.

    Returns False on failure; never raises.
    """
    kind_label = 'unknown'
    try:
        event = session.query(DomainEvent).filter(DomainEvent.id == event_id).with_for_update().first()
        if event is None or event.status == EventStatus.PROCESSED:
            session.rollback()
            return True

        kind_label = event.kind.value
        ledger_projector.project(session, event.kind, event.source_id)

        event.status = EventStatus.PROCESSED
        event.attempts = (event.attempts or 0) + 1
        event.last_error = None
        event.processed_at = datetime.now()
        session.commit()
        return True
    except Exception as exc:
        session.rollback()
        ledger_projection_failures_total.labels(kind=kind_label).inc()
        logger.exception(f"[OUTBOX] Ledger projection failed for event {event_id} ({kind_label}): {exc}")
        sentry_sdk.capture_exception(exc)
        _mark_failed(session, event_id, exc)
        return False


def dispatch_events(session: Session, event_ids: Iterable[int]) -> dict:
    """Dispatch several events; each one succeeds or fails on its own."""
    summary = {'processed': 0, 'failed': 0}
    for event_id in event_ids:
        if event_id is None:
            continue
        if dispatch_event(session, event_id):
            summary['processed'] += 1
        else:
            summary['failed'] += 1
    return summary


def pending_event_ids(session: Session, company_id: Optional[int] = None, limit: int = 100) -> List[int]:
    query = session.query(DomainEvent.id).filter(
        DomainEvent.status.in_([EventStatus.PENDING, EventStatus.FAILED])
    )
    if company_id is not None:
        query = query.filter(DomainEvent.company_id == company_id)
    return [row.id for row in query.order_by(DomainEvent.id).limit(limit).all()]


def dispatch_pending(session: Session, company_id: Optional[int] = None, limit: int = 100) -> dict:
    """Replay PENDING and FAILED events (repair job)."""
    event_ids = pending_event_ids(session, company_id, limit)
    session.rollback()
    summary = dispatch_events(session, event_ids)
    if event_ids:
        logger.info(f"[OUTBOX] Replay: {summary['processed']} processed, {summary['failed']} failed")
    return summary


def reconcile_confirmed_invoices(session: Session, company_id: Optional[int] = None) -> dict:
    """
    Re-project confirmed invoices that have no SALES entry.

    Covers events that were lost or marked PROCESSED before their entries
    were removed by hand. Whatever is left under the invoice reference (an
    advance RECEIPT without its SALES line) is removed first, since the
    projector skips any invoice that still has entries.
    """
    query = (
        session.query(PiInvoice.id, PiInvoice.company_id, PiInvoice.created_by)
        .outerjoin(AccountingEntry, and_(
            AccountingEntry.reference_type == EntryReferenceType.PI_INVOICE,
            AccountingEntry.reference_id == PiInvoice.id,
            AccountingEntry.entry_type == EntryType.SALES,
        ))
        .filter(PiInvoice.status == InvoiceStatus.CONFIRMED, AccountingEntry.id.is_(None))
    )
    if company_id is not None:
        query = query.filter(PiInvoice.company_id == company_id)

    try:
        event_ids = []
        for invoice_id, invoice_company_id, created_by in query.all():
            leftover = ledger_projector.delete_entries_by_reference(
                session, EntryReferenceType.PI_INVOICE, invoice_id
            )
            if leftover:
                logger.warning(f"[OUTBOX] PI invoice {invoice_id}: removed {leftover} partial entr"
                               f"{'y' if leftover == 1 else 'ies'} before re-projecting")
            event = record_event(session, invoice_company_id, EventKind.INVOICE_CONFIRMED, invoice_id, created_by)
            if event.status == EventStatus.PROCESSED:
                event.status = EventStatus.PENDING
            event_ids.append(event.id)
        session.commit()
    except Exception:
        session.rollback()
        raise

    summary = dispatch_events(session, event_ids)
    summary['missing'] = len(event_ids)
    logger.info(f"[OUTBOX] Reconcile: {len(event_ids)} confirmed invoice(s) without SALES entry")
    return summary
