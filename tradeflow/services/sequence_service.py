"""
Document numbering backed by per-scope counter rows.

Numbers are issued by a single atomic ``UPDATE ... SET last_value =
last_value + 1`` on the (scope, kind, bucket) row, read back inside the same
transaction, then formatted. Reading the highest existing document number and
adding one is never used: two writers can read the same maximum.

Formats:
    ORDER           ORD-YYYYMMDD-NNNN   daily bucket
    PURCHASE_ORDER  PO-YYYYMM-NNNN      monthly bucket, per company
    SHIPMENT        SHYYYYMMDDNNN       daily bucket, per company
    PI_INVOICE      PI-NNN-YY-YY        financial year (April-March), per company

Padding is a minimum width: the 10000th order of a day is ORD-...-10000.
"""
import logging
from datetime import date, datetime
from typing import Optional, Union

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tradeflow.exceptions import ValidationError
from tradeflow.models import SequenceCounter, DocumentKind
from tradeflow.services.concurrency import run_with_retry
from tradeflow.blueprints.metrics import documents_numbered_total
from tradeflow.utils.settings import get_setting

logger = logging.getLogger(__name__)

GLOBAL_SCOPE = 'global'

# kind -> (bucket strftime or None for financial year, template)
NUMBER_FORMATS = {
    DocumentKind.ORDER: ('%Y%m%d', 'ORD-{bucket}-{value:04d}'),
    DocumentKind.PURCHASE_ORDER: ('%Y%m', 'PO-{bucket}-{value:04d}'),
    DocumentKind.SHIPMENT: ('%Y%m%d', 'SH{bucket}{value:03d}'),
    DocumentKind.PI_INVOICE: (None, 'PI-{value:03d}-{bucket}'),
}


def _coerce_kind(kind: Union[DocumentKind, str]) -> DocumentKind:
    if isinstance(kind, DocumentKind):
        return kind
    try:
        return DocumentKind(str(kind).upper())
    except ValueError:
        raise ValidationError(f"Unknown document kind: {kind!r}")


def scope_key_for(kind: DocumentKind, company_id: int) -> str:
    """Order numbers share one global series unless ORDER_NUMBER_SCOPE=company."""
    if kind is DocumentKind.ORDER and get_setting('ORDER_NUMBER_SCOPE', 'global') != 'company':
        return GLOBAL_SCOPE
    if company_id is None:
        raise ValidationError(f"company_id is required for {kind.value} numbers")
    return f'company:{company_id}'


def financial_year(on: Union[date, datetime]) -> str:
    """Indian financial year label, e.g. 2025-04-01 .. 2026-03-31 -> '25-26'."""
    start = on.year if on.month >= 4 else on.year - 1
    return f'{start % 100:02d}-{(start + 1) % 100:02d}'


def bucket_for(kind: DocumentKind, on: Optional[Union[date, datetime]] = None) -> str:
    on = on or datetime.now()
    pattern = NUMBER_FORMATS[kind][0]
    if pattern is None:
        return financial_year(on)
    return on.strftime(pattern)


def format_number(kind: DocumentKind, bucket: str, value: int) -> str:
    return NUMBER_FORMATS[kind][1].format(bucket=bucket, value=value)


def _counter_filter(scope_key: str, kind: DocumentKind, bucket: str):
    return (
        SequenceCounter.scope_key == scope_key,
        SequenceCounter.document_kind == kind.value,
        SequenceCounter.bucket == bucket,
    )


def _increment(session: Session, scope_key: str, kind: DocumentKind, bucket: str) -> Optional[int]:
    """Atomically bump an existing counter. Returns None when the row does not exist yet."""
    stmt = (
        update(SequenceCounter)
        .where(*_counter_filter(scope_key, kind, bucket))
        .values(last_value=SequenceCounter.last_value + 1)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    if not result.rowcount:
        return None
    return (
        session.query(SequenceCounter.last_value)
        .filter(*_counter_filter(scope_key, kind, bucket))
        .scalar()
    )


def next_value(session: Session, kind: Union[DocumentKind, str], company_id: Optional[int],
               on: Optional[Union[date, datetime]] = None) -> int:
    """
    Allocate the next integer for a scope inside the caller's transaction.

    Does not commit. The counter row stays write-locked until the caller's
    transaction ends, so a rollback hands the value back.
    """
    kind = _coerce_kind(kind)
    scope_key = scope_key_for(kind, company_id)
    bucket = bucket_for(kind, on)

    value = _increment(session, scope_key, kind, bucket)
    if value is not None:
        return value

    # First issuance in this bucket. Another writer may create the row first.
    savepoint = session.begin_nested()
    try:
        session.add(SequenceCounter(
            scope_key=scope_key, document_kind=kind.value, bucket=bucket, last_value=1
        ))
        session.flush()
        savepoint.commit()
        logger.info(f"[SEQUENCE] New counter {scope_key}/{kind.value}/{bucket}")
        return 1
    except IntegrityError:
        savepoint.rollback()
        logger.debug(f"[SEQUENCE] Counter {scope_key}/{kind.value}/{bucket} created concurrently, incrementing")

    value = _increment(session, scope_key, kind, bucket)
    if value is None:
        raise RuntimeError(f"Sequence counter {scope_key}/{kind.value}/{bucket} vanished")
    return value


def next_number(session: Session, kind: Union[DocumentKind, str], company_id: Optional[int],
                on: Optional[Union[date, datetime]] = None) -> str:
    """Issue the next formatted document number inside the caller's transaction."""
    kind = _coerce_kind(kind)
    on = on or datetime.now()
    value = next_value(session, kind, company_id, on)
    number = format_number(kind, bucket_for(kind, on), value)
    documents_numbered_total.labels(kind=kind.value).inc()
    logger.debug(f"[SEQUENCE] Issued {number} (company={company_id})")
    return number


def issue_sequence_number(session: Session, kind: Union[DocumentKind, str], company_id: Optional[int],
                          on: Optional[Union[date, datetime]] = None) -> str:
    """
    Issue and commit a number in its own transaction.

    Lock failures are retried with backoff; after SEQUENCE_RETRY_ATTEMPTS the
    call raises SequenceContentionError (retryable).
    """
    def _op():
        try:
            number = next_number(session, kind, company_id, on)
            session.commit()
            return number
        except Exception:
            session.rollback()
            raise

    return run_with_retry(
        session, _op,
        attempts=get_setting('SEQUENCE_RETRY_ATTEMPTS', 5),
        backoff_base=get_setting('SEQUENCE_RETRY_BACKOFF', 0.05),
        operation='issue_sequence_number',
    )


def peek_last_value(session: Session, kind: Union[DocumentKind, str], company_id: Optional[int],
                    on: Optional[Union[date, datetime]] = None) -> int:
    """Last issued value for a bucket without consuming one (0 if unused)."""
    kind = _coerce_kind(kind)
    value = (
        session.query(SequenceCounter.last_value)
        .filter(*_counter_filter(scope_key_for(kind, company_id), kind, bucket_for(kind, on)))
        .scalar()
    )
    return value or 0
