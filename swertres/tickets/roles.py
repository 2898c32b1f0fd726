from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from .errors import AuthorizationError

if TYPE_CHECKING:
    from .models import Account, Ticket


class Role(str, Enum):
    """Supported roles, highest privilege first."""

    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    AREA_COORDINATOR = "area_coordinator"
    COORDINATOR = "coordinator"
    AGENT = "agent"
    OPERATOR = "operator"


ROLE_RANK: dict[Role, int] = {
    Role.SUPERADMIN: 6,
    Role.ADMIN: 5,
    Role.AREA_COORDINATOR: 4,
    Role.COORDINATOR: 3,
    Role.AGENT: 2,
    Role.OPERATOR: 1,
}

CLAIM_REVIEWER_ROLES = frozenset({Role.SUPERADMIN, Role.ADMIN})


def has_at_least(role: Role, minimum: Role) -> bool:
    return ROLE_RANK[role] >= ROLE_RANK[minimum]


def is_supervising(role: Role) -> bool:
    """Area coordinators and above may act on tickets issued by other agents."""

    return has_at_least(role, Role.AREA_COORDINATOR)


def can_review_claims(role: Role) -> bool:
    return role in CLAIM_REVIEWER_ROLES


def ensure_claim_reviewer(account: "Account") -> None:
    if not can_review_claims(account.role):
        raise AuthorizationError(f"Role {account.role.value} may not review claims")


def ensure_ticket_access(account: "Account", ticket: "Ticket") -> None:
    if ticket.agent_id == account.id or is_supervising(account.role):
        return
    raise AuthorizationError(
        f"Account {account.username} may only act on tickets it issued"
    )
