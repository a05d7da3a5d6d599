"""Company and role based row filtering shared by every read path."""
import logging
from dataclasses import dataclass
from typing import Optional, Union

from tradeflow.models import UserRole

logger = logging.getLogger(__name__)

ELEVATED_ROLES = {UserRole.ADMIN, UserRole.SUPER_ADMIN}


@dataclass(frozen=True)
class DataScope:
    """
    Predicate restricting visible rows.

    Always ``company_id == company``; staff additionally only see rows they
    created. Built from an identity the auth layer already verified.
    """
    company_id: int
    user_id: Optional[int]
    role: UserRole

    @property
    def restrict_to_creator(self) -> bool:
        return self.role not in ELEVATED_ROLES

    def as_filters(self) -> dict:
        filters = {'company_id': self.company_id}
        if self.restrict_to_creator:
            filters['created_by'] = self.user_id
        return filters

    def clauses(self, model) -> list:
        """SQL expressions for ``model`` (needs company_id and created_by columns)."""
        conditions = [model.company_id == self.company_id]
        if self.restrict_to_creator:
            conditions.append(model.created_by == self.user_id)
        return conditions

    def apply(self, query, model):
        """Add the scope predicate to a Query or Select."""
        return query.filter(*self.clauses(model))

    def allows(self, row) -> bool:
        """Check an already loaded row against the scope."""
        if row is None or row.company_id != self.company_id:
            return False
        return not self.restrict_to_creator or row.created_by == self.user_id


def _coerce_role(role: Union[UserRole, str, None]) -> UserRole:
    if isinstance(role, UserRole):
        return role
    try:
        return UserRole(str(role).upper())
    except ValueError:
        # Unknown roles get the most restrictive scope
        logger.warning(f"[SCOPE] Unknown role {role!r}, scoping as STAFF")
        return UserRole.STAFF


def build_data_scope(company_id: int, role: Union[UserRole, str, None], user_id: Optional[int]) -> DataScope:
    """Build the scope for an authenticated (company, role, user) triple."""
    return DataScope(company_id=company_id, user_id=user_id, role=_coerce_role(role))
