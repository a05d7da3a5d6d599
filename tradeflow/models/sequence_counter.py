"""Sequence counter model backing document numbering."""
import enum
from sqlalchemy import Column, String, Integer, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from tradeflow.database import Base, IdType


class DocumentKind(enum.Enum):
    ORDER = "ORDER"
    PURCHASE_ORDER = "PURCHASE_ORDER"
    SHIPMENT = "SHIPMENT"
    PI_INVOICE = "PI_INVOICE"


class SequenceCounter(Base):
    """
    Last number issued for one (scope, kind, bucket).

    Created lazily on first issuance, incremented with a single atomic
    UPDATE, never deleted.
    """

    __tablename__ = 'sequence_counter'
    __table_args__ = (
        UniqueConstraint('scope_key', 'document_kind', 'bucket', name='uq_sequence_counter_scope'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    scope_key = Column(String(64), nullable=False)  # 'global' or 'company:<id>'
    document_kind = Column(String(32), nullable=False)
    bucket = Column(String(16), nullable=False)  # YYYYMMDD, YYYYMM or YYYY-YYYY (financial year)
    last_value = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return (
            f"<SequenceCounter(scope='{self.scope_key}', kind='{self.document_kind}', "
            f"bucket='{self.bucket}', last={self.last_value})>"
        )
