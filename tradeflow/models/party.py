"""Party model - customers and vendors."""
import enum
from sqlalchemy import Column, String, DateTime, Enum, ForeignKey
from sqlalchemy.sql import func
from tradeflow.database import Base, IdType


class PartyRole(enum.Enum):
    CUSTOMER = "CUSTOMER"
    VENDOR = "VENDOR"


class Party(Base):
    """Counterparty on invoices, payments and purchase orders."""

    __tablename__ = 'party'

    id = Column(IdType, primary_key=True, autoincrement=True)
    company_id = Column(IdType, ForeignKey('company.id'), nullable=False, index=True)
    company_name = Column(String(255), nullable=False)
    role = Column(Enum(PartyRole, name='party_role'), nullable=False, default=PartyRole.CUSTOMER)
    contact_person = Column(String(200), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(String(500), nullable=True)
    created_by = Column(IdType, ForeignKey('app_user.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<Party(id={self.id}, name='{self.company_name}', role={self.role.value})>"
