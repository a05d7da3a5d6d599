"""Outbox of domain events consumed by the ledger projector."""
import enum
from sqlalchemy import Column, Integer, DateTime, Text, Enum, ForeignKey, UniqueConstraint, Index
from sqlalchemy.sql import func
from tradeflow.database import Base, IdType


class EventKind(enum.Enum):
    INVOICE_CONFIRMED = "INVOICE_CONFIRMED"
    PAYMENT_RECORDED = "PAYMENT_RECORDED"
    PURCHASE_ORDER_CREATED = "PURCHASE_ORDER_CREATED"


class EventStatus(enum.Enum):
    PENDING = "PENDING"
    PROCESSED = "PROCESSED"
    FAILED = "FAILED"


class DomainEvent(Base):
    """
    Outbox row written in the same transaction as the business change.

    Dispatch happens after commit; a PENDING or FAILED row is picked up
    again by ``flask ledger-replay``.
    """

    __tablename__ = 'domain_event'
    __table_args__ = (
        UniqueConstraint('kind', 'source_id', name='uq_domain_event_source'),
        Index('ix_domain_event_status', 'status'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    company_id = Column(IdType, ForeignKey('company.id'), nullable=False)
    kind = Column(Enum(EventKind, name='event_kind'), nullable=False)
    source_id = Column(IdType, nullable=False)
    status = Column(Enum(EventStatus, name='event_status'), nullable=False, default=EventStatus.PENDING)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_by = Column(IdType, ForeignKey('app_user.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    processed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<DomainEvent(id={self.id}, kind={self.kind.value}, source={self.source_id}, status={self.status.value})>"
