from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Sequence
from uuid import uuid4

from .errors import DuplicateTicketNumberError, NotFoundError, SettlementError, StateConflictError, ValidationError
from .identity import TicketIdentity
from .models import Account, AuditAction, ClaimAuditRecord, DrawStatus, Ticket, Wager
from .prizes import PrizeCalculator
from .state import TicketStateMachine
from .storage import TicketStore
from .views import PrintPayload, build_print_payload
from .wins import validate_combination

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class IssuedTicket:
    ticket: Ticket
    wagers: tuple[Wager, ...]
    print_payload: PrintPayload

    @property
    def qr_payload(self) -> str:
        return self.print_payload.qr_payload


@dataclass(slots=True)
class TicketIssuer:
    """Create tickets for an open draw."""

    store: TicketStore
    identity: TicketIdentity = field(default_factory=TicketIdentity)
    prizes: PrizeCalculator = field(default_factory=PrizeCalculator)
    max_attempts: int = 5
    clock: Callable[[], datetime] = _utcnow

    async def issue(self, agent: Account, draw_id: int, wagers: Sequence[Wager]) -> IssuedTicket:
        if not wagers:
            raise ValidationError("A ticket needs at least one wager")
        draw = await self.store.find_draw_by_id(draw_id)
        if draw is None:
            raise NotFoundError(f"Draw {draw_id} not found")
        if draw.status is not DrawStatus.OPEN:
            raise StateConflictError(f"Draw {draw_id} is {draw.status.value}; betting is closed")

        lines = [self._prepare(wager, index) for index, wager in enumerate(wagers)]
        total = sum((line.bet_amount for line in lines), Decimal("0"))

        for attempt in range(1, self.max_attempts + 1):
            ticket = Ticket(
                id=str(uuid4()),
                ticket_number=self.identity.generate_ticket_number(),
                status=TicketStateMachine.initial_state(),
                total_amount=total,
                draw_id=draw.id,
                agent_id=agent.id,
                issued_at=self.clock(),
            )
            audit = ClaimAuditRecord(
                id=str(uuid4()),
                ticket_id=ticket.id,
                action=AuditAction.ISSUED,
                performed_by=agent.id,
                old_status=None,
                new_status=ticket.status,
                created_at=ticket.issued_at,
                note="Ticket issued",
                metadata={"wagers": len(lines)},
            )
            try:
                stored = await self.store.insert_ticket(ticket, lines, audit)
            except DuplicateTicketNumberError:
                logger.warning("Ticket number collision on attempt %d; regenerating", attempt)
                continue

            stored_lines = tuple(
                Wager(
                    bet_type=line.bet_type,
                    bet_combination=line.bet_combination,
                    bet_amount=line.bet_amount,
                    sequence=line.sequence,
                    ticket_id=stored.id,
                )
                for line in lines
            )
            logger.info(
                "Issued ticket %s for draw %s with %d wagers totalling %s",
                stored.ticket_number,
                draw.id,
                len(stored_lines),
                total,
            )
            return IssuedTicket(
                ticket=stored,
                wagers=stored_lines,
                print_payload=build_print_payload(self.identity, stored, stored_lines, printed_at=stored.issued_at),
            )

        raise SettlementError(f"Unable to allocate a unique ticket number after {self.max_attempts} attempts")

    def _prepare(self, wager: Wager, index: int) -> Wager:
        validate_combination(wager.bet_combination, wager.bet_type)
        amount = self.prizes.validate_stake(wager.bet_amount)
        return Wager(
            bet_type=wager.bet_type,
            bet_combination=wager.bet_combination,
            bet_amount=amount,
            sequence=index,
        )
