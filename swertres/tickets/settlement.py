"""Batch settlement of a draw once its winning number is known."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable

from opentelemetry import trace

from .errors import NotFoundError, SettlementError, StateConflictError
from .events import EventSink, LoggingEventSink, TicketSettled
from .models import Account, AuditAction, Draw, Ticket, WinCategory
from .prizes import PrizeCalculator
from .roles import ensure_claim_reviewer
from .state import TicketStatus
from .storage import TicketStore
from .wins import evaluate_wagers, validate_winning_number
from .workflow import transition_ticket

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class CategoryTotals:
    count: int = 0
    amount: Decimal = Decimal("0")


@dataclass(slots=True)
class SettlementReport:
    draw_id: int
    winning_number: str
    evaluated: int = 0
    validated: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    total_prize: Decimal = Decimal("0")
    breakdown: dict[WinCategory, CategoryTotals] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    def add_winnings(self, category: WinCategory, amount: Decimal) -> None:
        totals = self.breakdown.setdefault(category, CategoryTotals())
        totals.count += 1
        totals.amount += amount


@dataclass(slots=True)
class DrawSettlement:
    """Evaluate every issued ticket of a draw and validate the winners.

    Each ticket settles independently; a failure on one ticket is recorded in
    the report and does not stop the batch. Running the same settlement twice
    only validates tickets that are still ``issued``.
    """

    store: TicketStore
    prizes: PrizeCalculator = field(default_factory=PrizeCalculator)
    events: EventSink = field(default_factory=LoggingEventSink)
    clock: Callable[[], datetime] = _utcnow

    async def settle(self, draw_id: int, winning_number: str, actor: Account) -> SettlementReport:
        ensure_claim_reviewer(actor)
        validate_winning_number(winning_number)

        with tracer.start_as_current_span("draws.settle") as span:
            span.set_attribute("draw.id", draw_id)
            span.set_attribute("draw.winning_number", winning_number)
            draw = await self._record_winning_number(draw_id, winning_number)

            report = SettlementReport(draw_id=draw.id, winning_number=winning_number)
            tickets = await self.store.list_tickets_for_draw(draw.id)
            for ticket in tickets:
                if ticket.status is not TicketStatus.ISSUED:
                    report.skipped.append(ticket.ticket_number)
                    continue
                report.evaluated += 1
                try:
                    settled = await self._settle_ticket(ticket, draw, actor)
                except SettlementError as exc:
                    logger.warning("Settlement failed for ticket %s: %s", ticket.ticket_number, exc)
                    report.failures[ticket.ticket_number] = f"{exc.kind}: {exc}"
                    continue
                except Exception as exc:
                    logger.exception("Unexpected error settling ticket %s", ticket.ticket_number)
                    report.failures[ticket.ticket_number] = f"{type(exc).__name__}: {exc}"
                    continue
                if settled is None:
                    continue
                prize, winnings = settled
                report.validated.append(ticket.ticket_number)
                report.total_prize += prize
                for category, amount in winnings:
                    report.add_winnings(category, amount)

            span.set_attribute("settlement.validated", len(report.validated))
            span.set_attribute("settlement.failures", len(report.failures))
            logger.info(
                "Draw %s settled with %s: %d evaluated, %d validated, %d failed",
                draw.id,
                winning_number,
                report.evaluated,
                len(report.validated),
                len(report.failures),
            )
            return report

    async def _record_winning_number(self, draw_id: int, winning_number: str) -> Draw:
        draw = await self.store.find_draw_by_id(draw_id)
        if draw is None:
            raise NotFoundError(f"Draw {draw_id} not found")
        if draw.winning_number is not None and draw.winning_number != winning_number:
            raise StateConflictError(
                f"Draw {draw_id} already settled with {draw.winning_number}; refusing {winning_number}"
            )
        recorded = await self.store.record_winning_number(draw_id, winning_number)
        if recorded is None:
            raise StateConflictError(f"Draw {draw_id} winning number changed concurrently")
        return recorded

    async def _settle_ticket(
        self, ticket: Ticket, draw: Draw, actor: Account
    ) -> tuple[Decimal, list[tuple[WinCategory, Decimal]]] | None:
        wagers = await self.store.find_wagers_by_ticket(ticket.id)
        outcomes = evaluate_wagers(wagers, draw.winning_number or "")
        winnings = [
            (outcome.category, self.prizes.price_wager(outcome.wager, outcome.category))
            for outcome in outcomes
            if outcome.is_win
        ]
        if not winnings:
            return None

        prize = sum((amount for _, amount in winnings), Decimal("0"))
        now = self.clock()
        updated = await transition_ticket(
            self.store,
            ticket,
            new=TicketStatus.VALIDATED,
            action=AuditAction.SETTLED,
            actor=actor.id,
            at=now,
            changes={"prize_amount": prize},
            note=f"Winning ticket for draw {draw.id}",
            metadata={
                "winning_number": draw.winning_number,
                "categories": [category.value for category, _ in winnings],
            },
        )
        await self.events.publish(
            TicketSettled(
                ticket_number=updated.ticket_number,
                draw_id=draw.id,
                agent_id=updated.agent_id,
                winning_number=draw.winning_number or "",
                prize_amount=prize,
                occurred_at=now,
            )
        )
        return prize, winnings
