"""Allowed status transitions per entity."""
from tradeflow.exceptions import InvalidTransitionError, ValidationError
from tradeflow.models.pi_invoice import InvoiceStatus
from tradeflow.models.order import OrderStatus
from tradeflow.models.payment import PaymentStatus
from tradeflow.models.purchase_order import PurchaseOrderStatus
from tradeflow.models.shipment import ShipmentStatus


TRANSITIONS = {
    InvoiceStatus: {
        InvoiceStatus.DRAFT: {InvoiceStatus.CONFIRMED, InvoiceStatus.CANCELLED},
    },
    OrderStatus: {
        OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
        OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
        OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
        OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    },
    PaymentStatus: {
        PaymentStatus.PENDING: {PaymentStatus.PARTIAL, PaymentStatus.PAID, PaymentStatus.OVERDUE},
        PaymentStatus.PARTIAL: {PaymentStatus.PAID, PaymentStatus.OVERDUE},
        PaymentStatus.OVERDUE: {PaymentStatus.PARTIAL, PaymentStatus.PAID},
    },
    PurchaseOrderStatus: {
        PurchaseOrderStatus.DRAFT: {PurchaseOrderStatus.PENDING, PurchaseOrderStatus.CANCELLED},
        PurchaseOrderStatus.PENDING: {
            PurchaseOrderStatus.APPROVED, PurchaseOrderStatus.REJECTED, PurchaseOrderStatus.CANCELLED
        },
        PurchaseOrderStatus.APPROVED: {PurchaseOrderStatus.CANCELLED},
    },
    ShipmentStatus: {
        ShipmentStatus.PENDING: {ShipmentStatus.IN_TRANSIT, ShipmentStatus.CANCELLED},
        ShipmentStatus.IN_TRANSIT: {ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED},
    },
}


def parse_status(enum_cls, value):
    """Accept an enum member, its value ('confirmed') or its name ('CONFIRMED')."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        for member in enum_cls:
            if value == member.value or value.upper() == member.name:
                return member
    raise ValidationError(f"Unknown {enum_cls.__name__} value: {value!r}")


def can_transition(current, target) -> bool:
    """True when moving from current to target is allowed (or is a no-op)."""
    if current == target:
        return True
    return target in TRANSITIONS[type(target)].get(current, set())


def ensure_transition(entity: str, current, target) -> bool:
    """
    Validate a status change.

    Returns False when target equals current (nothing to do), True when the
    caller should apply it. Raises InvalidTransitionError otherwise.
    """
    if current == target:
        return False
    if not can_transition(current, target):
        raise InvalidTransitionError(entity, current, target)
    return True
