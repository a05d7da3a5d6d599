"""AppUser model - people acting inside a company."""
import enum
from sqlalchemy import Column, String, Boolean, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tradeflow.database import Base, IdType


class UserRole(enum.Enum):
    """Role hierarchy: SUPER_ADMIN > ADMIN > STAFF."""
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    STAFF = "STAFF"


class AppUser(Base):
    """
    AppUser model.

    Credentials live with the external auth layer; this row only carries the
    company membership and role used for data scoping.
    """

    __tablename__ = 'app_user'

    id = Column(IdType, primary_key=True, autoincrement=True)
    company_id = Column(IdType, ForeignKey('company.id'), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    full_name = Column(String(200), nullable=True)
    role = Column(Enum(UserRole, name='user_role'), nullable=False, default=UserRole.STAFF)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    company = relationship('Company', back_populates='users')

    def __repr__(self):
        return f"<AppUser(id={self.id}, email='{self.email}', role={self.role.value})>"
