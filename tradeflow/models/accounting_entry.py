"""Accounting entry (ledger line) model."""
import enum
from sqlalchemy import (
    Column, String, Numeric, Date, DateTime, Text, Enum, ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.sql import func
from tradeflow.database import Base, IdType


class EntryType(enum.Enum):
    """Ledger entry type enum."""
    SALES = "SALES"
    RECEIPT = "RECEIPT"
    PURCHASE = "PURCHASE"
    EXPENSE = "EXPENSE"


class EntryReferenceType(enum.Enum):
    """Source document an entry was projected from."""
    PI_INVOICE = "PI_INVOICE"
    PAYMENT = "PAYMENT"  # reference_id is a payment_receipt.id, not payment.id
    PURCHASE_ORDER = "PURCHASE_ORDER"
    MANUAL = "MANUAL"


class AccountingEntry(Base):
    """
    Ledger line, always in the company's base currency.

    Rows are never updated. They are inserted by the ledger projector and
    deleted only when the source document they reference is deleted.
    (reference_type, reference_id, entry_type) is unique so projecting the
    same event twice cannot duplicate a line.
    """

    __tablename__ = 'accounting_entry'
    __table_args__ = (
        UniqueConstraint('reference_type', 'reference_id', 'entry_type', name='uq_accounting_entry_reference'),
        Index('ix_accounting_entry_company_date', 'company_id', 'entry_date'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    company_id = Column(IdType, ForeignKey('company.id'), nullable=False)
    entry_type = Column(Enum(EntryType, name='entry_type'), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    entry_date = Column(Date, nullable=False)
    description = Column(Text, nullable=True)
    reference_type = Column(Enum(EntryReferenceType, name='entry_reference_type'), nullable=False)
    reference_id = Column(IdType, nullable=True)
    reference_number = Column(String(64), nullable=True)
    party_name = Column(String(255), nullable=True)
    created_by = Column(IdType, ForeignKey('app_user.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def to_dict(self):
        return {
            'id': self.id,
            'entry_type': self.entry_type.value,
            'amount': self.amount,
            'entry_date': self.entry_date.isoformat() if self.entry_date else None,
            'description': self.description,
            'reference_type': self.reference_type.value,
            'reference_id': self.reference_id,
            'reference_number': self.reference_number,
            'party_name': self.party_name,
            'created_by': self.created_by,
        }

    def __repr__(self):
        return f"<AccountingEntry(id={self.id}, type={self.entry_type.value}, amount={self.amount})>"
