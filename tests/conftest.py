from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from itertools import count
from uuid import uuid4

import pytest

from swertres.tickets.events import CollectingEventSink
from swertres.tickets.identity import TicketIdentity
from swertres.tickets.models import (
    Account,
    AuditAction,
    BetType,
    ClaimAuditRecord,
    Draw,
    DrawStatus,
    DrawTime,
    Ticket,
    Wager,
)
from swertres.tickets.prizes import PrizeCalculator
from swertres.tickets.roles import Role
from swertres.tickets.state import TicketStatus
from swertres.tickets.storage import InMemoryTicketStore
from swertres.tickets.workflow import ClaimWorkflow

OPEN_DRAW_ID = 1
SETTLED_DRAW_ID = 2
SETTLED_WINNING_NUMBER = "555"


class FrozenClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def agent() -> Account:
    return Account(
        id="agent-1",
        username="msantos",
        full_name="Maria Santos",
        role=Role.AGENT,
        phone="09171234567",
        address="Mabolo, Cebu City",
    )


@pytest.fixture
def other_agent() -> Account:
    return Account(id="agent-2", username="jreyes", full_name="Jose Reyes", role=Role.AGENT)


@pytest.fixture
def area_coordinator() -> Account:
    return Account(id="coord-1", username="acruz", full_name="Ana Cruz", role=Role.AREA_COORDINATOR)


@pytest.fixture
def admin() -> Account:
    return Account(id="admin-1", username="admin", full_name="Head Office", role=Role.ADMIN)


@pytest.fixture
def store(agent, other_agent, area_coordinator, admin) -> InMemoryTicketStore:
    store = InMemoryTicketStore()
    for account in (agent, other_agent, area_coordinator, admin):
        store.add_account(account)
    store.add_draw(Draw(id=OPEN_DRAW_ID, draw_date=date(2026, 3, 14), draw_time=DrawTime.TWO_PM, status=DrawStatus.OPEN))
    store.add_draw(
        Draw(
            id=SETTLED_DRAW_ID,
            draw_date=date(2026, 3, 13),
            draw_time=DrawTime.NINE_PM,
            status=DrawStatus.COMPLETED,
            winning_number=SETTLED_WINNING_NUMBER,
        )
    )
    return store


@pytest.fixture
def events() -> CollectingEventSink:
    return CollectingEventSink()


@pytest.fixture
def identity(clock) -> TicketIdentity:
    suffixes = count(1000)
    return TicketIdentity(clock=clock, randbelow=lambda _: next(suffixes))


@pytest.fixture
def workflow(store, identity, events, clock) -> ClaimWorkflow:
    return ClaimWorkflow(store=store, identity=identity, prizes=PrizeCalculator(), events=events, clock=clock)


@pytest.fixture
def seed_ticket(store, identity, clock, agent):
    """Insert a ticket directly in the given status."""

    async def _seed(
        *,
        wagers: list[tuple[BetType, str, str]] | None = None,
        status: TicketStatus = TicketStatus.VALIDATED,
        draw_id: int = SETTLED_DRAW_ID,
        owner: Account | None = None,
        reprint_count: int = 0,
        prize_amount: Decimal | None = None,
    ) -> Ticket:
        lines = [
            Wager(bet_type=bet_type, bet_combination=combo, bet_amount=Decimal(amount), sequence=index)
            for index, (bet_type, combo, amount) in enumerate(wagers or [(BetType.STANDARD, "555", "10")])
        ]
        ticket = Ticket(
            id=str(uuid4()),
            ticket_number=identity.generate_ticket_number(),
            status=status,
            total_amount=sum((line.bet_amount for line in lines), Decimal("0")),
            draw_id=draw_id,
            agent_id=(owner or agent).id,
            issued_at=clock(),
            reprint_count=reprint_count,
            prize_amount=prize_amount,
        )
        audit = ClaimAuditRecord(
            id=str(uuid4()),
            ticket_id=ticket.id,
            action=AuditAction.ISSUED,
            performed_by=ticket.agent_id,
            old_status=None,
            new_status=TicketStatus.ISSUED,
            created_at=clock(),
        )
        clock.advance(milliseconds=1)
        return await store.insert_ticket(ticket, lines, audit)

    return _seed
