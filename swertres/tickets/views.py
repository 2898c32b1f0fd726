from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Sequence

from .identity import TicketIdentity, format_for_display
from .models import Draw, Ticket, Wager
from .wins import WagerOutcome


@dataclass(slots=True, frozen=True)
class PrintLine:
    sequence_label: str
    bet_type: str
    bet_combination: str
    bet_amount: Decimal


@dataclass(slots=True, frozen=True)
class PrintPayload:
    """Data a thermal-printer template needs to render a ticket copy."""

    ticket_number: str
    display_number: str
    qr_payload: str
    draw_id: int
    agent_id: str
    total_amount: Decimal
    reprint_count: int
    lines: tuple[PrintLine, ...]
    printed_at: datetime


@dataclass(slots=True, frozen=True)
class TicketView:
    """Read model returned by search and QR verification."""

    ticket: Ticket
    wagers: tuple[Wager, ...]
    draw: Draw | None
    outcomes: tuple[WagerOutcome, ...]
    prize_amount: Decimal

    @property
    def is_winning(self) -> bool:
        return any(outcome.is_win for outcome in self.outcomes)


def build_print_payload(
    identity: TicketIdentity,
    ticket: Ticket,
    wagers: Sequence[Wager],
    *,
    printed_at: datetime,
) -> PrintPayload:
    lines = tuple(
        PrintLine(
            sequence_label=identity.sequence_label(wager.sequence),
            bet_type=wager.bet_type.value,
            bet_combination=wager.bet_combination,
            bet_amount=wager.bet_amount,
        )
        for wager in wagers
    )
    return PrintPayload(
        ticket_number=ticket.ticket_number,
        display_number=format_for_display(ticket.ticket_number),
        qr_payload=identity.qr_payload(ticket),
        draw_id=ticket.draw_id,
        agent_id=ticket.agent_id,
        total_amount=ticket.total_amount,
        reprint_count=ticket.reprint_count,
        lines=lines,
        printed_at=printed_at,
    )
