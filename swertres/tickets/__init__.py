"""Ticket domain models, rules and settlement services."""

from .errors import (
    AlreadyClaimedError,
    AuthorizationError,
    DuplicateTicketNumberError,
    IntegrityError,
    NotFoundError,
    NotReprintableError,
    NotWinningError,
    RateLimitExceeded,
    ReprintLimitExceeded,
    SettlementError,
    StateConflictError,
    ValidationError,
)
from .identity import TicketIdentity
from .issuance import IssuedTicket, TicketIssuer
from .models import Account, BetType, ClaimAuditRecord, Draw, DrawStatus, DrawTime, Ticket, Wager, WinCategory
from .prizes import PrizeCalculator, PrizeTable
from .roles import Role
from .settlement import CategoryTotals, DrawSettlement, SettlementReport
from .state import TicketStateMachine, TicketStatus
from .storage import InMemoryTicketStore, TicketStore
from .workflow import ClaimWorkflow

__all__ = [
    "Account",
    "AlreadyClaimedError",
    "AuthorizationError",
    "BetType",
    "CategoryTotals",
    "ClaimAuditRecord",
    "ClaimWorkflow",
    "Draw",
    "DrawSettlement",
    "DrawStatus",
    "DrawTime",
    "DuplicateTicketNumberError",
    "InMemoryTicketStore",
    "IntegrityError",
    "IssuedTicket",
    "NotFoundError",
    "NotReprintableError",
    "NotWinningError",
    "PrizeCalculator",
    "PrizeTable",
    "RateLimitExceeded",
    "ReprintLimitExceeded",
    "Role",
    "SettlementError",
    "SettlementReport",
    "StateConflictError",
    "Ticket",
    "TicketIdentity",
    "TicketIssuer",
    "TicketStateMachine",
    "TicketStatus",
    "TicketStore",
    "ValidationError",
    "Wager",
    "WinCategory",
]
