from __future__ import annotations

from enum import Enum

from .errors import StateConflictError


class TicketStatus(str, Enum):
    """Supported states for a ticket's lifecycle."""

    ISSUED = "issued"
    VALIDATED = "validated"
    PENDING_APPROVAL = "pending_approval"
    PAID = "paid"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


TERMINAL_STATUSES = frozenset({TicketStatus.PAID, TicketStatus.CANCELLED, TicketStatus.EXPIRED})
CLAIMED_STATUSES = frozenset({TicketStatus.PAID, TicketStatus.PENDING_APPROVAL, TicketStatus.CANCELLED})
REPRINTABLE_STATUSES = frozenset({TicketStatus.ISSUED, TicketStatus.VALIDATED})


class TicketStateMachine:
    """Validate ticket lifecycle transitions."""

    _TRANSITIONS: dict[TicketStatus, set[TicketStatus]] = {
        TicketStatus.ISSUED: {TicketStatus.VALIDATED, TicketStatus.EXPIRED},
        TicketStatus.VALIDATED: {TicketStatus.PENDING_APPROVAL, TicketStatus.EXPIRED},
        TicketStatus.PENDING_APPROVAL: {TicketStatus.PAID, TicketStatus.CANCELLED},
        TicketStatus.PAID: set(),
        TicketStatus.CANCELLED: set(),
        TicketStatus.EXPIRED: set(),
    }

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return TicketStatus.ISSUED

    @classmethod
    def can_transition(cls, current: TicketStatus, new: TicketStatus) -> bool:
        return new in cls._TRANSITIONS.get(current, set())

    @classmethod
    def assert_transition(cls, current: TicketStatus, new: TicketStatus) -> None:
        if not cls.can_transition(current, new):
            raise StateConflictError(f"Invalid ticket status transition: {current.value} -> {new.value}")

    @classmethod
    def is_terminal(cls, status: TicketStatus) -> bool:
        return not cls._TRANSITIONS.get(status)
