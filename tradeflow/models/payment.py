"""Payment schedule and receipt models."""
import enum
from decimal import Decimal
from sqlalchemy import Column, String, Numeric, DateTime, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tradeflow.database import Base, IdType


class PaymentStatus(enum.Enum):
    """Payment status enum, mirrored on Order.payment_status."""
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"


class Payment(Base):
    """Receivable schedule for a PI invoice. At most one per invoice."""

    __tablename__ = 'payment'
    __table_args__ = (
        UniqueConstraint('pi_invoice_id', name='uq_payment_pi_invoice'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    company_id = Column(IdType, ForeignKey('company.id'), nullable=False, index=True)
    pi_invoice_id = Column(IdType, ForeignKey('pi_invoice.id'), nullable=False)
    party_id = Column(IdType, ForeignKey('party.id'), nullable=True)
    amount = Column(Numeric(14, 2), nullable=False)
    paid_amount = Column(Numeric(14, 2), nullable=False, default=Decimal('0.00'))
    due_amount = Column(Numeric(14, 2), nullable=False)
    due_date = Column(DateTime, nullable=False)
    status = Column(Enum(PaymentStatus, name='payment_status'), nullable=False, default=PaymentStatus.PENDING)
    created_by = Column(IdType, ForeignKey('app_user.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    pi_invoice = relationship('PiInvoice', back_populates='payment')
    party = relationship('Party')
    receipts = relationship(
        'PaymentReceipt', back_populates='payment', cascade='all, delete-orphan',
        order_by='PaymentReceipt.id'
    )

    def to_dict(self, include_receipts=False):
        data = {
            'id': self.id,
            'pi_invoice_id': self.pi_invoice_id,
            'party_id': self.party_id,
            'amount': self.amount,
            'paid_amount': self.paid_amount,
            'due_amount': self.due_amount,
            'due_date': self.due_date.isoformat() if self.due_date else None,
            'status': self.status.value,
        }
        if include_receipts:
            data['receipts'] = [receipt.to_dict() for receipt in self.receipts]
        return data

    def __repr__(self):
        return f"<Payment(id={self.id}, amount={self.amount}, due={self.due_amount}, status={self.status.value})>"


class PaymentReceipt(Base):
    """A single amount received against a Payment schedule."""

    __tablename__ = 'payment_receipt'

    id = Column(IdType, primary_key=True, autoincrement=True)
    payment_id = Column(IdType, ForeignKey('payment.id', ondelete='CASCADE'), nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=False)
    reference = Column(String(100), nullable=True)  # bank / UTR reference
    paid_at = Column(DateTime, nullable=False)
    created_by = Column(IdType, ForeignKey('app_user.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    payment = relationship('Payment', back_populates='receipts')

    def to_dict(self):
        return {
            'id': self.id,
            'payment_id': self.payment_id,
            'amount': self.amount,
            'reference': self.reference,
            'paid_at': self.paid_at.isoformat() if self.paid_at else None,
        }

    def __repr__(self):
        return f"<PaymentReceipt(id={self.id}, payment_id={self.payment_id}, amount={self.amount})>"
