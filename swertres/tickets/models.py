from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from .roles import Role
from .state import TicketStatus


class BetType(str, Enum):
    """Wager families offered on a ticket."""

    STANDARD = "standard"
    RAMBOLITO = "rambolito"


class WinCategory(str, Enum):
    """Outcome of matching a wager against a winning number."""

    STRAIGHT = "straight"
    RAMBOLITO_DISTINCT = "rambolito-distinct"
    RAMBOLITO_DOUBLE = "rambolito-double"
    NONE = "none"

    @property
    def is_win(self) -> bool:
        return self is not WinCategory.NONE


class DrawTime(str, Enum):
    TWO_PM = "twoPM"
    FIVE_PM = "fivePM"
    NINE_PM = "ninePM"


class DrawStatus(str, Enum):
    PENDING = "pending"
    OPEN = "open"
    CLOSED = "closed"
    COMPLETED = "completed"


class AuditAction(str, Enum):
    ISSUED = "issued"
    SETTLED = "settled"
    CLAIM_REQUESTED = "claim_requested"
    CLAIM_APPROVED = "claim_approved"
    CLAIM_REJECTED = "claim_rejected"
    EXPIRED = "expired"


@dataclass(slots=True)
class Account:
    """Agent or staff account that owns tickets or reviews claims."""

    id: str
    username: str
    full_name: str
    role: Role
    phone: str | None = None
    address: str | None = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.username


@dataclass(slots=True)
class Draw:
    """A scheduled draw; settled once ``winning_number`` is recorded."""

    id: int
    draw_date: date
    draw_time: DrawTime
    status: DrawStatus
    winning_number: str | None = None


@dataclass(slots=True, frozen=True)
class Wager:
    """Single bet line on a ticket. Immutable once issued."""

    bet_type: BetType
    bet_combination: str
    bet_amount: Decimal
    sequence: int = 0
    ticket_id: str = ""


@dataclass(slots=True)
class Ticket:
    """Aggregate representing an issued lottery ticket."""

    id: str
    ticket_number: str
    status: TicketStatus
    total_amount: Decimal
    draw_id: int
    agent_id: str
    issued_at: datetime
    reprint_count: int = 0
    prize_amount: Decimal | None = None
    claimer_name: str | None = None
    claimer_phone: str | None = None
    claimer_address: str | None = None
    claimed_at: datetime | None = None
    approval_requested_at: datetime | None = None
    approval_requested_by: str | None = None
    approved_at: datetime | None = None
    approved_by: str | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None


@dataclass(slots=True)
class ClaimAuditRecord:
    """Append-only history entry, one per status transition."""

    id: str
    ticket_id: str
    action: AuditAction
    performed_by: str
    old_status: TicketStatus | None
    new_status: TicketStatus
    created_at: datetime
    note: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ReprintRecord:
    id: str
    ticket_id: str
    reprinted_by: str
    reprint_number: int
    created_at: datetime
