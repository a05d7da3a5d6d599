"""Shipment model - at most one per order."""
import enum
from sqlalchemy import Column, String, DateTime, Date, Text, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tradeflow.database import Base, IdType


class ShipmentStatus(enum.Enum):
    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class Shipment(Base):
    """Shipment."""

    __tablename__ = 'shipment'
    __table_args__ = (
        UniqueConstraint('order_id', name='uq_shipment_order'),
        UniqueConstraint('company_id', 'shipment_number', name='uq_shipment_company_number'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    company_id = Column(IdType, ForeignKey('company.id'), nullable=False, index=True)
    order_id = Column(IdType, ForeignKey('orders.id'), nullable=False)
    shipment_number = Column(String(64), nullable=False)
    booking_number = Column(String(100), nullable=True)
    booking_date = Column(Date, nullable=True)
    vessel_voyage_info = Column(String(255), nullable=True)
    way_bill_number = Column(String(100), nullable=True)
    truck_number = Column(String(50), nullable=True)
    bl_number = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(Enum(ShipmentStatus, name='shipment_status'), nullable=False, default=ShipmentStatus.PENDING)
    created_by = Column(IdType, ForeignKey('app_user.id'), nullable=True)
    updated_by = Column(IdType, ForeignKey('app_user.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    order = relationship('Order', back_populates='shipment')

    def to_dict(self):
        return {
            'id': self.id,
            'order_id': self.order_id,
            'shipment_number': self.shipment_number,
            'booking_number': self.booking_number,
            'booking_date': self.booking_date.isoformat() if self.booking_date else None,
            'vessel_voyage_info': self.vessel_voyage_info,
            'way_bill_number': self.way_bill_number,
            'truck_number': self.truck_number,
            'bl_number': self.bl_number,
            'notes': self.notes,
            'status': self.status.value,
        }

    def __repr__(self):
        return f"<Shipment(id={self.id}, number='{self.shipment_number}', status={self.status.value})>"
