"""Retry helpers for transactions that can lose a lock race."""
import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from tradeflow.exceptions import SequenceContentionError
from tradeflow.blueprints.metrics import transaction_retries_total, sequence_contention_total

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    SQLite ignores SELECT ... FOR UPDATE; there the BEGIN IMMEDIATE issued by
    the engine already serializes writers.
    """
    return query.with_for_update()


def run_with_retry(session, func, *, attempts: int = 3, backoff_base: float = 0.1, operation: str = 'transaction'):
    """
    Run a whole transactional unit, replaying it on lock/serialization failures.

    ``func`` must be safe to call again from scratch: every retry starts after
    ``session.rollback()``. Retries OperationalError (lock timeout, deadlock,
    database is locked) and StaleDataError with exponential backoff. When the
    budget is exhausted a retryable SequenceContentionError is raised.
    Any other exception propagates unchanged.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            session.rollback()
            if attempt >= attempts - 1:
                sequence_contention_total.labels(operation=operation).inc()
                logger.error(f"[RETRY] {operation} gave up after {attempts} attempts: {exc}")
                raise SequenceContentionError(
                    payload={'operation': operation, 'attempts': attempts}
                ) from exc
            transaction_retries_total.labels(operation=operation).inc()
            delay = backoff_base * (2 ** attempt)
            logger.warning(f"[RETRY] {operation} attempt {attempt + 1}/{attempts} failed ({exc.__class__.__name__}), retrying in {delay:.2f}s")
            time.sleep(delay)
