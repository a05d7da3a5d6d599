"""Purchase order models."""
import enum
from decimal import Decimal
from sqlalchemy import (
    Column, String, Numeric, Integer, DateTime, Date, Text, Enum, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tradeflow.database import Base, IdType


class PurchaseOrderStatus(enum.Enum):
    """Purchase order status enum."""
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class PurchaseOrder(Base):
    """Purchase order raised on a vendor, numbered per company and month."""

    __tablename__ = 'purchase_order'
    __table_args__ = (
        UniqueConstraint('company_id', 'po_number', name='uq_purchase_order_company_number'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    company_id = Column(IdType, ForeignKey('company.id'), nullable=False, index=True)
    po_number = Column(String(64), nullable=False)
    po_date = Column(Date, nullable=False)
    delivery_date = Column(Date, nullable=True)
    vendor_id = Column(IdType, ForeignKey('party.id'), nullable=True)
    vendor_name = Column(String(255), nullable=False)
    currency = Column(String(3), nullable=False, default='INR')
    cgst_rate = Column(Numeric(5, 2), nullable=False, default=Decimal('6'))
    sgst_rate = Column(Numeric(5, 2), nullable=False, default=Decimal('6'))
    sub_total = Column(Numeric(14, 2), nullable=False, default=Decimal('0.00'))
    cgst_amount = Column(Numeric(14, 2), nullable=False, default=Decimal('0.00'))
    sgst_amount = Column(Numeric(14, 2), nullable=False, default=Decimal('0.00'))
    total_amount = Column(Numeric(14, 2), nullable=False, default=Decimal('0.00'))
    status = Column(
        Enum(PurchaseOrderStatus, name='purchase_order_status'), nullable=False, default=PurchaseOrderStatus.DRAFT
    )
    notes = Column(Text, nullable=True)
    created_by = Column(IdType, ForeignKey('app_user.id'), nullable=True)
    updated_by = Column(IdType, ForeignKey('app_user.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    vendor = relationship('Party')
    items = relationship(
        'PurchaseOrderItem', back_populates='purchase_order', cascade='all, delete-orphan',
        order_by='PurchaseOrderItem.line_number'
    )

    def to_dict(self, include_items=True):
        data = {
            'id': self.id,
            'po_number': self.po_number,
            'po_date': self.po_date.isoformat() if self.po_date else None,
            'delivery_date': self.delivery_date.isoformat() if self.delivery_date else None,
            'vendor_id': self.vendor_id,
            'vendor_name': self.vendor_name,
            'currency': self.currency,
            'cgst_rate': self.cgst_rate,
            'sgst_rate': self.sgst_rate,
            'sub_total': self.sub_total,
            'cgst_amount': self.cgst_amount,
            'sgst_amount': self.sgst_amount,
            'total_amount': self.total_amount,
            'status': self.status.value,
            'notes': self.notes,
            'created_by': self.created_by,
        }
        if include_items:
            data['items'] = [item.to_dict() for item in self.items]
        return data

    def __repr__(self):
        return f"<PurchaseOrder(id={self.id}, number='{self.po_number}', total={self.total_amount})>"


class PurchaseOrderItem(Base):
    """Purchase order line. amount = quantity x rate."""

    __tablename__ = 'purchase_order_item'

    id = Column(IdType, primary_key=True, autoincrement=True)
    purchase_order_id = Column(
        IdType, ForeignKey('purchase_order.id', ondelete='CASCADE'), nullable=False, index=True
    )
    line_number = Column(Integer, nullable=False, default=1)
    item_description = Column(String(500), nullable=False)
    unit = Column(String(20), nullable=True)
    quantity = Column(Numeric(14, 3), nullable=False)
    rate = Column(Numeric(14, 2), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)

    purchase_order = relationship('PurchaseOrder', back_populates='items')

    def to_dict(self):
        return {
            'line_number': self.line_number,
            'item_description': self.item_description,
            'unit': self.unit,
            'quantity': self.quantity,
            'rate': self.rate,
            'amount': self.amount,
        }

    def __repr__(self):
        return f"<PurchaseOrderItem(id={self.id}, description='{self.item_description}', amount={self.amount})>"
