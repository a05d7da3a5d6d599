"""Company model - each business using the platform."""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tradeflow.database import Base, IdType


class Company(Base):
    """Company model - owner of every business document."""

    __tablename__ = 'company'

    id = Column(IdType, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    base_currency = Column(String(3), nullable=False, default='INR', server_default='INR')
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    users = relationship('AppUser', back_populates='company')

    def __repr__(self):
        return f"<Company(id={self.id}, name='{self.name}', currency='{self.base_currency}')>"
