"""Order model - created from exactly one confirmed PI invoice."""
import enum
from sqlalchemy import (
    Column, String, Numeric, Integer, DateTime, Date, Enum, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tradeflow.database import Base, IdType
from tradeflow.models.payment import PaymentStatus


class OrderStatus(enum.Enum):
    """Order status enum."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class Order(Base):
    """
    Order.

    ``pi_invoice_id`` is unique: the database refuses a second order for the
    same invoice even when two requests pass the application check together.
    """

    __tablename__ = 'orders'
    __table_args__ = (
        UniqueConstraint('pi_invoice_id', name='uq_orders_pi_invoice'),
        UniqueConstraint('company_id', 'order_number', name='uq_orders_company_number'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    company_id = Column(IdType, ForeignKey('company.id'), nullable=False, index=True)
    order_number = Column(String(64), nullable=False)
    pi_invoice_id = Column(IdType, ForeignKey('pi_invoice.id'), nullable=False)
    pi_number = Column(String(64), nullable=True)
    total_amount = Column(Numeric(14, 2), nullable=False)
    payment_amount = Column(Numeric(14, 2), nullable=True)
    product_qty = Column(Integer, nullable=False, default=0)
    delivery_terms = Column(String(100), nullable=True)
    booking_number = Column(String(100), nullable=True)
    booking_date = Column(Date, nullable=True)
    way_bill_number = Column(String(100), nullable=True)
    truck_number = Column(String(50), nullable=True)
    order_status = Column(Enum(OrderStatus, name='order_status'), nullable=False, default=OrderStatus.PENDING)
    payment_status = Column(
        Enum(PaymentStatus, name='order_payment_status'), nullable=False, default=PaymentStatus.PENDING
    )
    created_by = Column(IdType, ForeignKey('app_user.id'), nullable=True)
    updated_by = Column(IdType, ForeignKey('app_user.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    pi_invoice = relationship('PiInvoice', back_populates='order')
    shipment = relationship('Shipment', back_populates='order', uselist=False)

    def to_dict(self):
        return {
            'id': self.id,
            'order_number': self.order_number,
            'pi_invoice_id': self.pi_invoice_id,
            'pi_number': self.pi_number,
            'total_amount': self.total_amount,
            'payment_amount': self.payment_amount,
            'product_qty': self.product_qty,
            'delivery_terms': self.delivery_terms,
            'booking_number': self.booking_number,
            'booking_date': self.booking_date.isoformat() if self.booking_date else None,
            'way_bill_number': self.way_bill_number,
            'truck_number': self.truck_number,
            'order_status': self.order_status.value,
            'payment_status': self.payment_status.value,
            'created_by': self.created_by,
        }

    def __repr__(self):
        return f"<Order(id={self.id}, number='{self.order_number}', status={self.order_status.value})>"
