"""
Role Capabilities

Every role check in the system goes through these functions.
Nothing else compares role strings.
"""

from typing import Iterable, Optional

from budget_tracker.errors import Unauthorized
from budget_tracker.models.ledger import Identity, UserRole


REVIEWER_ROLES = frozenset({UserRole.ADMIN, UserRole.MANAGER})
PROJECT_CREATOR_ROLES = frozenset({UserRole.ADMIN, UserRole.MANAGER, UserRole.SALESPERSON})


def can_review(role: UserRole) -> bool:
    """Admins and managers approve or reject expenses."""
    return role in REVIEWER_ROLES


def can_create_project(role: UserRole) -> bool:
    return role in PROJECT_CREATOR_ROLES


def can_view_all_expenses(role: UserRole) -> bool:
    """Reviewers see the whole ledger; everyone else sees their own rows."""
    return role in REVIEWER_ROLES


def can_view_analytics(role: UserRole, allowed: Optional[Iterable[str]] = None) -> bool:
    """
    Check the analytics read gate.

    ``allowed`` is the configured list of role names. Empty or None
    lets any authenticated caller through.
    """
    allowed = {str(name).lower() for name in (allowed or ())}
    if not allowed:
        return True
    return role.value in allowed


def require_identity(identity: Optional[Identity], action: str = "continue") -> Identity:
    """Return the identity, or raise Unauthorized if there is none."""
    if identity is None:
        raise Unauthorized(action)
    return identity
