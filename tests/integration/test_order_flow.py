"""
Integration tests for PI invoice confirmation into orders.
"""

import re
import threading
import pytest
from datetime import date
from decimal import Decimal

from tradeflow.database import get_session, remove_session
from tradeflow.exceptions import ConflictError, ValidationError, InvalidTransitionError, NotFoundError
from tradeflow.models import (
    Order, OrderStatus, Payment, PaymentStatus, InvoiceStatus, DomainEvent, EventKind,
    AccountingEntry, ShipmentStatus, DocumentKind
)
from tradeflow.services import order_service
from tradeflow.services.order_service import (
    confirm_invoice_into_order, create_order_snapshot_from_invoice, update_order,
    update_order_status, delete_order, get_orders, get_order, build_order_document
)
from tradeflow.services.pi_invoice_service import cancel_pi_invoice, get_invoices_for_order_creation
from tradeflow.services.shipment_service import (
    create_shipment, update_shipment_status, delete_shipment, get_shipment, get_shipments
)
from tradeflow.services.sequence_service import peek_last_value

ORDER_NUMBER = re.compile(r'^ORD-\d{8}-\d{4,}$')


class TestConfirmInvoiceIntoOrder:
    """Confirmation creates exactly one order and one payment schedule."""

    def test_creates_order_and_payment(self, session, company, admin_user, invoice):
        order = confirm_invoice_into_order(session, invoice.id, company.id, admin_user.id)

        assert ORDER_NUMBER.match(order.order_number)
        assert order.order_status == OrderStatus.CONFIRMED
        assert order.payment_status == PaymentStatus.PENDING
        assert order.product_qty == 10
        assert order.total_amount == Decimal('1000.00')
        assert order.delivery_terms == 'FOB Mundra'
        assert order.pi_number == invoice.pi_number

        session.refresh(invoice)
        assert invoice.status == InvoiceStatus.CONFIRMED

        payment = session.query(Payment).filter_by(pi_invoice_id=invoice.id).one()
        assert payment.amount == Decimal('1200.00')
        assert payment.due_amount == Decimal('1000.00')
        assert payment.paid_amount == Decimal('0.00')
        assert payment.status == PaymentStatus.PENDING

    def test_optional_fields_are_stored(self, session, company, admin_user, invoice):
        order = confirm_invoice_into_order(
            session, invoice.id, company.id, admin_user.id,
            booking_number='BK-77', booking_date='2025-06-20', truck_number='   ',
            payment_amount='500'
        )
        assert order.booking_number == 'BK-77'
        assert order.booking_date == date(2025, 6, 20)
        assert order.truck_number is None
        assert order.payment_amount == Decimal('500.00')

    def test_second_confirmation_is_a_conflict(self, session, company, admin_user, invoice):
        first = confirm_invoice_into_order(session, invoice.id, company.id, admin_user.id)

        with pytest.raises(ConflictError) as exc_info:
            confirm_invoice_into_order(session, invoice.id, company.id, admin_user.id)

        assert exc_info.value.payload['order_number'] == first.order_number
        assert session.query(Order).filter_by(pi_invoice_id=invoice.id).count() == 1
        assert session.query(Payment).filter_by(pi_invoice_id=invoice.id).count() == 1

    def test_unknown_field_is_rejected(self, session, company, admin_user, invoice):
        with pytest.raises(ValidationError):
            confirm_invoice_into_order(session, invoice.id, company.id, admin_user.id, colour='blue')
        assert session.query(Order).count() == 0

    def test_cancelled_invoice_cannot_be_confirmed(self, session, company, admin_user, invoice):
        cancel_pi_invoice(session, invoice.id, company.id, admin_user.id)

        with pytest.raises(InvalidTransitionError):
            confirm_invoice_into_order(session, invoice.id, company.id, admin_user.id)
        assert session.query(Order).count() == 0

    def test_invoice_without_lines_consumes_no_number(self, session, company, admin_user, invoice):
        invoice.lines.clear()
        session.commit()

        with pytest.raises(ValidationError):
            confirm_invoice_into_order(session, invoice.id, company.id, admin_user.id)

        assert peek_last_value(session, DocumentKind.ORDER, company.id) == 0
        session.refresh(invoice)
        assert invoice.status == InvoiceStatus.DRAFT

    def test_other_company_cannot_confirm(self, session, other_company, other_company_admin, invoice):
        with pytest.raises(NotFoundError):
            confirm_invoice_into_order(session, invoice.id, other_company.id, other_company_admin.id)

    def test_failure_rolls_back_everything(self, session, company, admin_user, invoice, monkeypatch):
        def broken_record_event(*args, **kwargs):
            raise RuntimeError('outbox unavailable')

        monkeypatch.setattr(order_service, 'record_event', broken_record_event)

        with pytest.raises(RuntimeError):
            confirm_invoice_into_order(session, invoice.id, company.id, admin_user.id)

        session.refresh(invoice)
        assert invoice.status == InvoiceStatus.DRAFT
        assert session.query(Order).count() == 0
        assert session.query(Payment).count() == 0
        assert peek_last_value(session, DocumentKind.ORDER, company.id) == 0

    def test_event_and_ledger_entries_are_written(self, session, company, admin_user, invoice):
        confirm_invoice_into_order(session, invoice.id, company.id, admin_user.id)

        event = session.query(DomainEvent).filter_by(kind=EventKind.INVOICE_CONFIRMED, source_id=invoice.id).one()
        assert event.status.value == 'PROCESSED'
        assert session.query(AccountingEntry).filter_by(reference_id=invoice.id).count() == 2

    def test_ready_for_order_listing(self, session, company, admin_user, admin_scope, make_invoice):
        confirmed = make_invoice()
        draft = make_invoice()
        confirm_invoice_into_order(session, confirmed.id, company.id, admin_user.id)

        assert get_invoices_for_order_creation(session, admin_scope) == []

        order = session.query(Order).filter_by(pi_invoice_id=confirmed.id).one()
        delete_order(session, order.id, company.id)
        ready = get_invoices_for_order_creation(session, admin_scope)
        assert [inv.id for inv in ready] == [confirmed.id]
        assert draft.id not in [inv.id for inv in ready]


class TestOrderMaintenance:

    @pytest.fixture
    def order(self, session, company, admin_user, invoice):
        return confirm_invoice_into_order(session, invoice.id, company.id, admin_user.id)

    def test_update_never_renumbers(self, session, company, admin_user, order):
        number = order.order_number
        updated = update_order(
            session, order.id, company.id, admin_user.id,
            way_bill_number='WB-1', booking_number=''
        )
        assert updated.order_number == number
        assert updated.way_bill_number == 'WB-1'
        assert updated.booking_number is None

    def test_status_follows_transition_table(self, session, company, admin_user, order):
        assert update_order_status(session, order.id, company.id, admin_user.id, 'processing').order_status \
            == OrderStatus.PROCESSING

        with pytest.raises(InvalidTransitionError):
            update_order_status(session, order.id, company.id, admin_user.id, OrderStatus.DELIVERED)

    def test_snapshot_after_delete(self, session, company, admin_user, invoice, order):
        old_number = order.order_number
        delete_order(session, order.id, company.id)

        snapshot = create_order_snapshot_from_invoice(session, invoice.id, company.id, admin_user.id)

        assert snapshot.order_number != old_number
        assert session.query(Payment).filter_by(pi_invoice_id=invoice.id).count() == 1
        events = session.query(DomainEvent).filter_by(kind=EventKind.INVOICE_CONFIRMED).count()
        assert events == 1

    def test_snapshot_requires_confirmed_invoice(self, session, company, admin_user, make_invoice):
        draft = make_invoice()
        with pytest.raises(InvalidTransitionError):
            create_order_snapshot_from_invoice(session, draft.id, company.id, admin_user.id)

    def test_snapshot_refuses_existing_order(self, session, company, admin_user, invoice, order):
        with pytest.raises(ConflictError):
            create_order_snapshot_from_invoice(session, invoice.id, company.id, admin_user.id)

    def test_order_with_shipment_cannot_be_deleted(self, session, company, admin_user, order):
        create_shipment(session, order.id, company.id, admin_user.id, truck_number='GJ-12-AB-1234')

        with pytest.raises(ConflictError):
            delete_order(session, order.id, company.id)
        assert session.get(Order, order.id) is not None

    def test_document_view_model(self, session, admin_scope, invoice, order):
        document = build_order_document(session, order.id, admin_scope)

        assert document['order']['order_number'] == order.order_number
        assert document['party']['company_name'] == 'Gulf Foods LLC'
        assert len(document['lines']) == 1
        assert document['payment']['due_amount'] == Decimal('1000.00')
        assert document['shipment'] is None


class TestOrderScoping:

    def test_staff_only_sees_own_orders(self, session, company, admin_user, staff_user,
                                        admin_scope, staff_scope, make_invoice):
        own = make_invoice(user=staff_user)
        theirs = make_invoice()
        own_order = confirm_invoice_into_order(session, own.id, company.id, staff_user.id)
        admin_order = confirm_invoice_into_order(session, theirs.id, company.id, admin_user.id)

        staff_view = get_orders(session, staff_scope)
        assert [o.id for o in staff_view['items']] == [own_order.id]
        assert get_orders(session, admin_scope)['total'] == 2

        with pytest.raises(NotFoundError):
            get_order(session, admin_order.id, staff_scope)

    def test_search_by_number(self, session, company, admin_user, admin_scope, invoice):
        order = confirm_invoice_into_order(session, invoice.id, company.id, admin_user.id)
        result = get_orders(session, admin_scope, search=order.order_number[-4:])
        assert [o.id for o in result['items']] == [order.id]
        assert get_orders(session, admin_scope, status='delivered')['total'] == 0


class TestShipments:

    @pytest.fixture
    def order(self, session, company, admin_user, invoice):
        return confirm_invoice_into_order(session, invoice.id, company.id, admin_user.id)

    def test_one_shipment_per_order(self, session, company, admin_user, order):
        shipment = create_shipment(session, order.id, company.id, admin_user.id, booking_date='2025-06-18')

        assert re.match(r'^SH\d{8}\d{3,}$', shipment.shipment_number)
        assert shipment.status == ShipmentStatus.PENDING
        assert shipment.booking_date == date(2025, 6, 18)

        with pytest.raises(ConflictError):
            create_shipment(session, order.id, company.id, admin_user.id)

    def test_status_and_delete(self, session, company, admin_user, order):
        shipment = create_shipment(session, order.id, company.id, admin_user.id)

        assert update_shipment_status(session, shipment.id, company.id, admin_user.id, 'in_transit').status \
            == ShipmentStatus.IN_TRANSIT
        with pytest.raises(InvalidTransitionError):
            update_shipment_status(session, shipment.id, company.id, admin_user.id, 'pending')

        order_id = order.id
        delete_shipment(session, shipment.id, company.id)
        delete_order(session, order_id, company.id)
        assert session.get(Order, order_id) is None

    def test_staff_only_sees_own_shipments(self, session, company, admin_user, staff_user,
                                           admin_scope, staff_scope, make_invoice, order):
        admin_shipment = create_shipment(session, order.id, company.id, admin_user.id)
        staff_invoice = make_invoice(user=staff_user)
        staff_order = confirm_invoice_into_order(session, staff_invoice.id, company.id, staff_user.id)
        staff_shipment = create_shipment(session, staff_order.id, company.id, staff_user.id)

        assert [s.id for s in get_shipments(session, staff_scope)] == [staff_shipment.id]
        assert len(get_shipments(session, admin_scope)) == 2
        with pytest.raises(NotFoundError):
            get_shipment(session, admin_shipment.id, staff_scope)


class TestConcurrentConfirmation:
    """Racing confirmations of one invoice leave exactly one order."""

    def test_only_one_caller_wins(self, app, session, company, admin_user, invoice):
        invoice_id, company_id, user_id = invoice.id, company.id, admin_user.id
        session.rollback()  # release this thread's write lock before the workers start

        outcomes, errors = [], []
        lock = threading.Lock()

        def worker():
            with app.app_context():
                worker_session = get_session()
                try:
                    confirm_invoice_into_order(worker_session, invoice_id, company_id, user_id)
                    outcome = 'ok'
                except ConflictError:
                    outcome = 'conflict'
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                    return
                finally:
                    remove_session()
                with lock:
                    outcomes.append(outcome)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        assert errors == []
        assert sorted(outcomes) == ['conflict', 'conflict', 'conflict', 'ok']
        assert session.query(Order).filter_by(pi_invoice_id=invoice_id).count() == 1
        assert session.query(Payment).filter_by(pi_invoice_id=invoice_id).count() == 1

    def test_unique_constraint_is_reported_as_conflict(self, session, company, admin_user, invoice, monkeypatch):
        first = confirm_invoice_into_order(session, invoice.id, company.id, admin_user.id)
        first_number = first.order_number
        # skip the read-side check so the insert reaches the unique key
        monkeypatch.setattr(order_service, '_ensure_no_order', lambda session, invoice: None)

        with pytest.raises(ConflictError) as exc_info:
            confirm_invoice_into_order(session, invoice.id, company.id, admin_user.id)

        assert exc_info.value.payload == {'pi_invoice_id': invoice.id}
        orders = session.query(Order).filter_by(pi_invoice_id=invoice.id).all()
        assert [o.order_number for o in orders] == [first_number]
