"""Models package - exports all SQLAlchemy models."""
# Core
from tradeflow.models.company import Company
from tradeflow.models.app_user import AppUser, UserRole
from tradeflow.models.party import Party, PartyRole

# Documents
from tradeflow.models.pi_invoice import PiInvoice, PiInvoiceLine, InvoiceStatus
from tradeflow.models.payment import Payment, PaymentReceipt, PaymentStatus
from tradeflow.models.order import Order, OrderStatus
from tradeflow.models.shipment import Shipment, ShipmentStatus
from tradeflow.models.purchase_order import PurchaseOrder, PurchaseOrderItem, PurchaseOrderStatus

# Accounting & infrastructure
from tradeflow.models.accounting_entry import AccountingEntry, EntryType, EntryReferenceType
from tradeflow.models.sequence_counter import SequenceCounter, DocumentKind
from tradeflow.models.domain_event import DomainEvent, EventKind, EventStatus

__all__ = [
    'Company', 'AppUser', 'UserRole', 'Party', 'PartyRole',
    'PiInvoice', 'PiInvoiceLine', 'InvoiceStatus',
    'Payment', 'PaymentReceipt', 'PaymentStatus',
    'Order', 'OrderStatus', 'Shipment', 'ShipmentStatus',
    'PurchaseOrder', 'PurchaseOrderItem', 'PurchaseOrderStatus',
    'AccountingEntry', 'EntryType', 'EntryReferenceType',
    'SequenceCounter', 'DocumentKind',
    'DomainEvent', 'EventKind', 'EventStatus',
]
