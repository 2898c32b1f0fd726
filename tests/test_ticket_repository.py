from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from swertres.services.repository import SqlTicketStore
from swertres.tickets.errors import DuplicateTicketNumberError
from swertres.tickets.identity import TicketIdentity
from swertres.tickets.models import (
    Account,
    AuditAction,
    BetType,
    ClaimAuditRecord,
    Draw,
    DrawStatus,
    DrawTime,
    ReprintRecord,
    Ticket,
    Wager,
)
from swertres.tickets.roles import Role
from swertres.tickets.state import REPRINTABLE_STATUSES, TicketStatus
from swertres.tickets.workflow import ClaimWorkflow

ISSUED_AT = datetime(2026, 3, 14, 9, 30, 0, 250000, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def engine() -> AsyncEngine:
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def sql_store(engine: AsyncEngine) -> SqlTicketStore:
    factory = async_sessionmaker(engine, expire_on_commit=False)
    store = SqlTicketStore(factory, engine=engine)
    await store.ensure_schema()
    await store.save_account(
        Account(id="agent-1", username="msantos", full_name="Maria Santos", role=Role.AGENT, phone="0917")
    )
    await store.save_account(Account(id="admin-1", username="admin", full_name="Head Office", role=Role.ADMIN))
    await store.save_draw(
        Draw(id=7, draw_date=date(2026, 3, 14), draw_time=DrawTime.FIVE_PM, status=DrawStatus.COMPLETED, winning_number="318")
    )
    return store


def _issue_audit(ticket: Ticket) -> ClaimAuditRecord:
    return ClaimAuditRecord(
        id=str(uuid4()),
        ticket_id=ticket.id,
        action=AuditAction.ISSUED,
        performed_by=ticket.agent_id,
        old_status=None,
        new_status=TicketStatus.ISSUED,
        created_at=ISSUED_AT,
        metadata={"wagers": 1},
    )


async def _insert(store: SqlTicketStore, *, number: str = "17734806002501234", status=TicketStatus.VALIDATED) -> Ticket:
    ticket = Ticket(
        id=str(uuid4()),
        ticket_number=number,
        status=status,
        total_amount=Decimal("20.00"),
        draw_id=7,
        agent_id="agent-1",
        issued_at=ISSUED_AT,
    )
    wagers = [
        Wager(bet_type=BetType.RAMBOLITO, bet_combination="183", bet_amount=Decimal("10"), sequence=0),
        Wager(bet_type=BetType.STANDARD, bet_combination="318", bet_amount=Decimal("10"), sequence=1),
    ]
    await store.insert_ticket(ticket, wagers, _issue_audit(ticket))
    return ticket


@pytest.mark.asyncio
async def test_ensure_schema_creates_tables(engine: AsyncEngine, sql_store: SqlTicketStore):
    async with engine.begin() as conn:
        tables = await conn.run_sync(lambda sync_conn: set(sa_inspect(sync_conn).get_table_names()))

    assert {"accounts", "draws", "tickets", "bets", "claims_audit", "ticket_reprints", "rate_limits"} <= tables


@pytest.mark.asyncio
async def test_insert_and_read_back(sql_store: SqlTicketStore):
    ticket = await _insert(sql_store)

    stored = await sql_store.find_ticket_by_number(ticket.ticket_number)
    wagers = await sql_store.find_wagers_by_ticket(ticket.id)
    audit = await sql_store.list_audit_records(ticket.id)

    assert stored is not None
    assert stored.status is TicketStatus.VALIDATED
    assert stored.total_amount == Decimal("20")
    assert [wager.bet_combination for wager in wagers] == ["183", "318"]
    assert wagers[0].bet_type is BetType.RAMBOLITO
    assert audit[0].metadata == {"wagers": 1}
    assert await sql_store.find_ticket_by_number("17734806009999999") is None


@pytest.mark.asyncio
async def test_integrity_hash_survives_round_trip(sql_store: SqlTicketStore):
    identity = TicketIdentity()
    ticket = await _insert(sql_store)

    stored = await sql_store.find_ticket_by_number(ticket.ticket_number)

    assert identity.verify_integrity_hash(identity.qr_payload(ticket), stored)


@pytest.mark.asyncio
async def test_duplicate_ticket_number_is_reported(sql_store: SqlTicketStore):
    await _insert(sql_store)

    with pytest.raises(DuplicateTicketNumberError):
        await _insert(sql_store)


@pytest.mark.asyncio
async def test_conditional_status_update(sql_store: SqlTicketStore):
    ticket = await _insert(sql_store)
    now = datetime(2026, 3, 15, tzinfo=timezone.utc)
    audit = ClaimAuditRecord(
        id=str(uuid4()),
        ticket_id=ticket.id,
        action=AuditAction.CLAIM_REQUESTED,
        performed_by="agent-1",
        old_status=TicketStatus.VALIDATED,
        new_status=TicketStatus.PENDING_APPROVAL,
        created_at=now,
    )

    updated = await sql_store.update_ticket_status(
        ticket.id,
        expected=TicketStatus.VALIDATED,
        new=TicketStatus.PENDING_APPROVAL,
        changes={"claimer_name": "Maria Santos", "claimed_at": now},
        audit=audit,
    )
    stale = await sql_store.update_ticket_status(
        ticket.id, expected=TicketStatus.VALIDATED, new=TicketStatus.EXPIRED
    )

    assert updated is not None
    assert updated.status is TicketStatus.PENDING_APPROVAL
    assert updated.claimer_name == "Maria Santos"
    assert stale is None
    assert len(await sql_store.list_audit_records(ticket.id)) == 2


@pytest.mark.asyncio
async def test_reprint_increment_stops_at_cap(sql_store: SqlTicketStore):
    ticket = await _insert(sql_store)

    def _record() -> ReprintRecord:
        return ReprintRecord(
            id=str(uuid4()), ticket_id=ticket.id, reprinted_by="agent-1", reprint_number=0, created_at=ISSUED_AT
        )

    results = [
        await sql_store.increment_reprint_count(
            ticket.id, max_reprints=2, allowed=REPRINTABLE_STATUSES, record=_record()
        )
        for _ in range(3)
    ]

    assert [result.reprint_count if result else None for result in results] == [1, 2, None]
    records = await sql_store.list_reprint_records(ticket.id)
    assert [record.reprint_number for record in records] == [1, 2]


@pytest.mark.asyncio
async def test_record_winning_number_is_write_once(sql_store: SqlTicketStore):
    draw = await sql_store.save_draw(
        Draw(id=8, draw_date=date(2026, 3, 14), draw_time=DrawTime.NINE_PM, status=DrawStatus.CLOSED)
    )

    recorded = await sql_store.record_winning_number(draw.id, "902")
    repeated = await sql_store.record_winning_number(draw.id, "902")
    conflicting = await sql_store.record_winning_number(draw.id, "903")

    assert recorded is not None and recorded.status is DrawStatus.COMPLETED
    assert repeated is not None
    assert conflicting is None


@pytest.mark.asyncio
async def test_workflow_runs_against_sql_store(sql_store: SqlTicketStore):
    ticket = await _insert(sql_store)
    workflow = ClaimWorkflow(store=sql_store)
    agent = await sql_store.find_account("agent-1")
    admin = await sql_store.find_account("admin-1")

    await workflow.request_claim(ticket.ticket_number, agent)
    paid = await workflow.approve_claim(ticket.ticket_number, admin)

    # Rambolito 183 (distinct) and standard 318 both hit 318.
    assert paid.status is TicketStatus.PAID
    assert paid.prize_amount == Decimal("750") + Decimal("4500")
    assert paid.approved_at is not None
    assert len(await workflow.audit_trail(ticket.ticket_number)) == 3
