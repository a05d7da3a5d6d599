"""
Unit tests for status transition tables.
"""

import pytest
from tradeflow.exceptions import InvalidTransitionError, ValidationError
from tradeflow.models import (
    InvoiceStatus, OrderStatus, PaymentStatus, PurchaseOrderStatus, ShipmentStatus
)
from tradeflow.models.status import can_transition, ensure_transition, parse_status


class TestInvoiceTransitions:
    """Invoice confirmation is one-way."""

    def test_draft_can_be_confirmed_or_cancelled(self):
        assert can_transition(InvoiceStatus.DRAFT, InvoiceStatus.CONFIRMED)
        assert can_transition(InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED)

    def test_confirmed_cannot_go_back_to_draft(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            ensure_transition('invoice', InvoiceStatus.CONFIRMED, InvoiceStatus.DRAFT)
        assert exc_info.value.status_code == 422
        assert exc_info.value.to_dict()['from'] == 'confirmed'
        assert exc_info.value.to_dict()['to'] == 'draft'

    def test_cancelled_cannot_be_confirmed(self):
        assert not can_transition(InvoiceStatus.CANCELLED, InvoiceStatus.CONFIRMED)

    def test_same_status_is_a_noop(self):
        assert ensure_transition('invoice', InvoiceStatus.CONFIRMED, InvoiceStatus.CONFIRMED) is False


class TestOrderAndShipmentTransitions:

    def test_order_happy_path(self):
        path = [OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING,
                OrderStatus.SHIPPED, OrderStatus.DELIVERED]
        for current, target in zip(path, path[1:]):
            assert ensure_transition('order', current, target) is True

    def test_delivered_order_is_final(self):
        for target in OrderStatus:
            if target is not OrderStatus.DELIVERED:
                assert not can_transition(OrderStatus.DELIVERED, target)

    def test_shipped_order_cannot_be_cancelled(self):
        assert not can_transition(OrderStatus.SHIPPED, OrderStatus.CANCELLED)

    def test_shipment_cannot_skip_transit(self):
        assert not can_transition(ShipmentStatus.PENDING, ShipmentStatus.DELIVERED)


class TestPaymentAndPurchaseOrderTransitions:

    def test_overdue_payment_can_still_be_paid(self):
        assert can_transition(PaymentStatus.OVERDUE, PaymentStatus.PARTIAL)
        assert can_transition(PaymentStatus.OVERDUE, PaymentStatus.PAID)

    def test_paid_is_final(self):
        assert not can_transition(PaymentStatus.PAID, PaymentStatus.PARTIAL)

    def test_purchase_order_approval_requires_pending(self):
        assert not can_transition(PurchaseOrderStatus.DRAFT, PurchaseOrderStatus.APPROVED)
        assert can_transition(PurchaseOrderStatus.PENDING, PurchaseOrderStatus.APPROVED)


class TestParseStatus:

    def test_accepts_value_name_and_member(self):
        assert parse_status(OrderStatus, 'shipped') is OrderStatus.SHIPPED
        assert parse_status(OrderStatus, 'SHIPPED') is OrderStatus.SHIPPED
        assert parse_status(OrderStatus, OrderStatus.SHIPPED) is OrderStatus.SHIPPED

    def test_unknown_value_is_a_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_status(OrderStatus, 'lost-at-sea')
        assert not isinstance(exc_info.value, InvalidTransitionError)
