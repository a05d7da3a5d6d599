"""PI invoice (proforma invoice / quotation) models."""
import enum
from decimal import Decimal
from sqlalchemy import (
    Column, String, Numeric, Integer, DateTime, Date, Text, Enum, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tradeflow.database import Base, IdType


class InvoiceStatus(enum.Enum):
    """PI invoice status enum."""
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PiInvoice(Base):
    """
    Proforma invoice.

    Confirmation is the only trigger for downstream records: an Order, a
    Payment schedule and SALES/RECEIPT ledger entries.
    """

    __tablename__ = 'pi_invoice'
    __table_args__ = (
        UniqueConstraint('company_id', 'pi_number', name='uq_pi_invoice_company_number'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    company_id = Column(IdType, ForeignKey('company.id'), nullable=False, index=True)
    pi_number = Column(String(64), nullable=False)
    status = Column(Enum(InvoiceStatus, name='invoice_status'), nullable=False, default=InvoiceStatus.DRAFT)
    party_id = Column(IdType, ForeignKey('party.id'), nullable=True)
    party_name = Column(String(255), nullable=True)
    currency = Column(String(3), nullable=False, default='INR')
    invoice_date = Column(Date, nullable=False)
    delivery_term = Column(String(100), nullable=True)
    payment_term = Column(String(100), nullable=True)
    charges = Column(Numeric(14, 2), nullable=False, default=Decimal('0.00'))
    total_amount = Column(Numeric(14, 2), nullable=False, default=Decimal('0.00'))
    advance_amount = Column(Numeric(14, 2), nullable=False, default=Decimal('0.00'))
    notes = Column(Text, nullable=True)
    created_by = Column(IdType, ForeignKey('app_user.id'), nullable=True)
    updated_by = Column(IdType, ForeignKey('app_user.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    party = relationship('Party')
    lines = relationship(
        'PiInvoiceLine', back_populates='pi_invoice', cascade='all, delete-orphan',
        order_by='PiInvoiceLine.line_number'
    )
    order = relationship('Order', back_populates='pi_invoice', uselist=False)
    payment = relationship('Payment', back_populates='pi_invoice', uselist=False)

    @property
    def product_qty(self):
        """Total quantity across lines."""
        return sum((line.quantity for line in self.lines), 0)

    def to_dict(self, include_lines=True):
        data = {
            'id': self.id,
            'pi_number': self.pi_number,
            'status': self.status.value,
            'party_id': self.party_id,
            'party_name': self.party_name,
            'currency': self.currency,
            'invoice_date': self.invoice_date.isoformat() if self.invoice_date else None,
            'delivery_term': self.delivery_term,
            'payment_term': self.payment_term,
            'charges': self.charges,
            'total_amount': self.total_amount,
            'advance_amount': self.advance_amount,
            'notes': self.notes,
            'created_by': self.created_by,
        }
        if include_lines:
            data['lines'] = [line.to_dict() for line in self.lines]
        return data

    def __repr__(self):
        return f"<PiInvoice(id={self.id}, number='{self.pi_number}', status={self.status.value}, total={self.total_amount})>"


class PiInvoiceLine(Base):
    """Line item of a PI invoice."""

    __tablename__ = 'pi_invoice_line'

    id = Column(IdType, primary_key=True, autoincrement=True)
    pi_invoice_id = Column(IdType, ForeignKey('pi_invoice.id', ondelete='CASCADE'), nullable=False, index=True)
    line_number = Column(Integer, nullable=False, default=1)
    product_name = Column(String(255), nullable=False)
    hsn_code = Column(String(20), nullable=True)
    packaging = Column(String(255), nullable=True)
    quantity = Column(Integer, nullable=False)
    unit = Column(String(20), nullable=True)
    rate = Column(Numeric(14, 2), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)

    pi_invoice = relationship('PiInvoice', back_populates='lines')

    def to_dict(self):
        return {
            'line_number': self.line_number,
            'product_name': self.product_name,
            'hsn_code': self.hsn_code,
            'packaging': self.packaging,
            'quantity': self.quantity,
            'unit': self.unit,
            'rate': self.rate,
            'amount': self.amount,
        }

    def __repr__(self):
        return f"<PiInvoiceLine(id={self.id}, product='{self.product_name}', qty={self.quantity})>"
