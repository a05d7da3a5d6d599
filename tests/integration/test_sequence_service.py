"""
Integration tests for document numbering.
These tests ensure numbers are unique and gap free under concurrent issuance.
"""

import threading
from datetime import date

from tradeflow.database import get_session, remove_session
from tradeflow.models import DocumentKind, SequenceCounter
from tradeflow.services.sequence_service import issue_sequence_number, next_number, peek_last_value

ON = date(2025, 6, 15)


class TestSequentialIssuance:

    def test_first_number_creates_the_counter(self, session, company):
        assert peek_last_value(session, DocumentKind.PURCHASE_ORDER, company.id, ON) == 0

        assert issue_sequence_number(session, DocumentKind.PURCHASE_ORDER, company.id, ON) == 'PO-202506-0001'
        assert issue_sequence_number(session, 'purchase_order', company.id, ON) == 'PO-202506-0002'
        assert peek_last_value(session, DocumentKind.PURCHASE_ORDER, company.id, ON) == 2
        assert session.query(SequenceCounter).count() == 1

    def test_buckets_are_independent(self, session, company):
        assert issue_sequence_number(session, DocumentKind.SHIPMENT, company.id, date(2025, 6, 15)) == 'SH20250615001'
        assert issue_sequence_number(session, DocumentKind.SHIPMENT, company.id, date(2025, 6, 16)) == 'SH20250616001'

    def test_purchase_orders_are_numbered_per_company(self, session, company, other_company):
        assert issue_sequence_number(session, DocumentKind.PURCHASE_ORDER, company.id, ON) == 'PO-202506-0001'
        assert issue_sequence_number(session, DocumentKind.PURCHASE_ORDER, other_company.id, ON) == 'PO-202506-0001'

    def test_order_numbers_are_global_by_default(self, session, company, other_company):
        assert issue_sequence_number(session, DocumentKind.ORDER, company.id, ON) == 'ORD-20250615-0001'
        assert issue_sequence_number(session, DocumentKind.ORDER, other_company.id, ON) == 'ORD-20250615-0002'

    def test_rollback_hands_the_value_back(self, session, company):
        issue_sequence_number(session, DocumentKind.PURCHASE_ORDER, company.id, ON)

        assert next_number(session, DocumentKind.PURCHASE_ORDER, company.id, ON) == 'PO-202506-0002'
        session.rollback()

        assert next_number(session, DocumentKind.PURCHASE_ORDER, company.id, ON) == 'PO-202506-0002'
        session.commit()


class TestConcurrentIssuance:
    """N concurrent issuances for one scope yield N distinct consecutive values."""

    def test_threads_never_share_a_number(self, app, session, company):
        company_id = company.id
        session.rollback()  # release this thread's write lock before the workers start

        workers, per_worker = 8, 5
        issued, errors = [], []
        lock = threading.Lock()

        def worker():
            with app.app_context():
                worker_session = get_session()
                try:
                    for _ in range(per_worker):
                        number = issue_sequence_number(worker_session, DocumentKind.ORDER, company_id, ON)
                        with lock:
                            issued.append(number)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    remove_session()

        threads = [threading.Thread(target=worker) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        assert errors == []
        expected = [f'ORD-20250615-{value:04d}' for value in range(1, workers * per_worker + 1)]
        assert sorted(issued) == expected
        assert peek_last_value(session, DocumentKind.ORDER, company_id, ON) == workers * per_worker
