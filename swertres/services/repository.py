from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Collection, Mapping, Sequence

from sqlalchemy import exc as sa_exc
from sqlalchemy import or_, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from ..db.models import AccountTable, ClaimAuditTable, DrawTable, ReprintTable, TicketTable, WagerTable
from ..tickets.errors import DuplicateTicketNumberError
from ..tickets.models import (
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
from ..tickets.roles import Role
from ..tickets.state import TicketStatus

logger = logging.getLogger(__name__)

_TICKET_COLUMNS = frozenset(TicketTable.__table__.columns.keys())


class SqlTicketStore:
    """Ticket persistence backed by SQLModel tables.

    Status changes and reprint increments are single conditional ``UPDATE``
    statements, so the database decides which of two concurrent callers wins.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine: AsyncEngine | None = engine

    async def ensure_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("Session factory is not bound to an async engine")
        async with self._engine.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)

    async def save_account(self, account: Account) -> Account:
        async with self._session_factory() as session:
            row = await session.get(AccountTable, account.id)
            if row is None:
                row = AccountTable(id=account.id)
                session.add(row)
            row.username = account.username
            row.full_name = account.full_name
            row.role = account.role.value
            row.phone = account.phone
            row.address = account.address
            await session.commit()
        return account

    async def save_draw(self, draw: Draw) -> Draw:
        async with self._session_factory() as session:
            row = await session.get(DrawTable, draw.id) if draw.id else None
            if row is None:
                row = DrawTable(id=draw.id or None)
                session.add(row)
            row.draw_date = draw.draw_date
            row.draw_time = draw.draw_time.value
            row.status = draw.status.value
            row.winning_number = draw.winning_number
            await session.commit()
            await session.refresh(row)
            return self._row_to_draw(row)

    async def find_ticket_by_number(self, ticket_number: str) -> Ticket | None:
        async with self._session_factory() as session:
            result = await session.execute(select(TicketTable).where(TicketTable.ticket_number == ticket_number))
            row = result.scalars().first()
            return self._row_to_ticket(row) if row is not None else None

    async def find_wagers_by_ticket(self, ticket_id: str) -> list[Wager]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(WagerTable).where(WagerTable.ticket_id == ticket_id).order_by(WagerTable.sequence)
            )
            return [self._row_to_wager(row) for row in result.scalars().all()]

    async def find_draw_by_id(self, draw_id: int) -> Draw | None:
        async with self._session_factory() as session:
            row = await session.get(DrawTable, draw_id)
            return self._row_to_draw(row) if row is not None else None

    async def find_account(self, account_id: str) -> Account | None:
        async with self._session_factory() as session:
            row = await session.get(AccountTable, account_id)
            return self._row_to_account(row) if row is not None else None

    async def list_tickets_for_draw(self, draw_id: int) -> list[Ticket]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(TicketTable).where(TicketTable.draw_id == draw_id).order_by(TicketTable.issued_at)
            )
            return [self._row_to_ticket(row) for row in result.scalars().all()]

    async def insert_ticket(
        self, ticket: Ticket, wagers: Sequence[Wager], audit: ClaimAuditRecord
    ) -> Ticket:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(self._ticket_to_row(ticket))
                    # Parent row first so the foreign keys below resolve.
                    await session.flush()
                    for wager in wagers:
                        session.add(
                            WagerTable(
                                ticket_id=ticket.id,
                                sequence=wager.sequence,
                                bet_type=wager.bet_type.value,
                                bet_combination=wager.bet_combination,
                                bet_amount=wager.bet_amount,
                            )
                        )
                    session.add(self._audit_to_row(audit))
        except sa_exc.IntegrityError as exc:
            if await self.find_ticket_by_number(ticket.ticket_number) is not None:
                raise DuplicateTicketNumberError(f"Ticket number {ticket.ticket_number} already exists") from exc
            raise
        return ticket

    async def update_ticket_status(
        self,
        ticket_id: str,
        *,
        expected: TicketStatus,
        new: TicketStatus,
        changes: Mapping[str, Any] | None = None,
        audit: ClaimAuditRecord | None = None,
    ) -> Ticket | None:
        values: dict[str, Any] = dict(changes or {})
        unknown = set(values) - _TICKET_COLUMNS
        if unknown:
            raise ValueError(f"Unknown ticket columns: {sorted(unknown)}")
        values["status"] = new.value

        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(TicketTable)
                    .where(TicketTable.id == ticket_id, TicketTable.status == expected.value)
                    .values(**values)
                )
                if result.rowcount != 1:
                    return None
                if audit is not None:
                    session.add(self._audit_to_row(audit))
            row = await session.get(TicketTable, ticket_id, populate_existing=True)
            return self._row_to_ticket(row) if row is not None else None

    async def increment_reprint_count(
        self,
        ticket_id: str,
        *,
        max_reprints: int,
        allowed: Collection[TicketStatus],
        record: ReprintRecord,
    ) -> Ticket | None:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(TicketTable)
                    .where(
                        TicketTable.id == ticket_id,
                        TicketTable.status.in_([status.value for status in allowed]),
                        TicketTable.reprint_count < max_reprints,
                    )
                    .values(reprint_count=TicketTable.reprint_count + 1)
                )
                if result.rowcount != 1:
                    return None
                row = await session.get(TicketTable, ticket_id, populate_existing=True)
                if row is None:
                    return None
                session.add(
                    ReprintTable(
                        id=record.id,
                        ticket_id=ticket_id,
                        reprinted_by=record.reprinted_by,
                        reprint_number=row.reprint_count,
                        created_at=record.created_at,
                    )
                )
                ticket = self._row_to_ticket(row)
            return ticket

    async def append_audit_record(self, record: ClaimAuditRecord) -> None:
        async with self._session_factory() as session:
            session.add(self._audit_to_row(record))
            await session.commit()

    async def list_audit_records(self, ticket_id: str) -> list[ClaimAuditRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ClaimAuditTable)
                .where(ClaimAuditTable.ticket_id == ticket_id)
                .order_by(ClaimAuditTable.created_at)
            )
            return [self._row_to_audit(row) for row in result.scalars().all()]

    async def list_reprint_records(self, ticket_id: str) -> list[ReprintRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ReprintTable)
                .where(ReprintTable.ticket_id == ticket_id)
                .order_by(ReprintTable.reprint_number)
            )
            return [
                ReprintRecord(
                    id=row.id,
                    ticket_id=row.ticket_id,
                    reprinted_by=row.reprinted_by,
                    reprint_number=row.reprint_number,
                    created_at=row.created_at,
                )
                for row in result.scalars().all()
            ]

    async def record_winning_number(self, draw_id: int, winning_number: str) -> Draw | None:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(DrawTable)
                    .where(
                        DrawTable.id == draw_id,
                        or_(DrawTable.winning_number.is_(None), DrawTable.winning_number == winning_number),
                    )
                    .values(winning_number=winning_number, status=DrawStatus.COMPLETED.value)
                )
                if result.rowcount != 1:
                    logger.info("Winning number for draw %s not recorded", draw_id)
                    return None
            row = await session.get(DrawTable, draw_id, populate_existing=True)
            return self._row_to_draw(row) if row is not None else None

    @staticmethod
    def _ticket_to_row(ticket: Ticket) -> TicketTable:
        return TicketTable(
            id=ticket.id,
            ticket_number=ticket.ticket_number,
            status=ticket.status.value,
            total_amount=ticket.total_amount,
            reprint_count=ticket.reprint_count,
            draw_id=ticket.draw_id,
            agent_id=ticket.agent_id,
            prize_amount=ticket.prize_amount,
            issued_at=ticket.issued_at,
        )

    @staticmethod
    def _row_to_ticket(row: TicketTable) -> Ticket:
        return Ticket(
            id=row.id,
            ticket_number=row.ticket_number,
            status=TicketStatus(row.status),
            total_amount=Decimal(row.total_amount),
            draw_id=row.draw_id,
            agent_id=row.agent_id,
            issued_at=row.issued_at,
            reprint_count=row.reprint_count,
            prize_amount=Decimal(row.prize_amount) if row.prize_amount is not None else None,
            claimer_name=row.claimer_name,
            claimer_phone=row.claimer_phone,
            claimer_address=row.claimer_address,
            claimed_at=row.claimed_at,
            approval_requested_at=row.approval_requested_at,
            approval_requested_by=row.approval_requested_by,
            approved_at=row.approved_at,
            approved_by=row.approved_by,
            rejected_at=row.rejected_at,
            rejection_reason=row.rejection_reason,
        )

    @staticmethod
    def _row_to_wager(row: WagerTable) -> Wager:
        return Wager(
            bet_type=BetType(row.bet_type),
            bet_combination=row.bet_combination,
            bet_amount=Decimal(row.bet_amount),
            sequence=row.sequence,
            ticket_id=row.ticket_id,
        )

    @staticmethod
    def _row_to_draw(row: DrawTable) -> Draw:
        return Draw(
            id=row.id,
            draw_date=row.draw_date,
            draw_time=DrawTime(row.draw_time),
            status=DrawStatus(row.status),
            winning_number=row.winning_number,
        )

    @staticmethod
    def _row_to_account(row: AccountTable) -> Account:
        return Account(
            id=row.id,
            username=row.username,
            full_name=row.full_name,
            role=Role(row.role),
            phone=row.phone,
            address=row.address,
        )

    @staticmethod
    def _audit_to_row(record: ClaimAuditRecord) -> ClaimAuditTable:
        return ClaimAuditTable(
            id=record.id,
            ticket_id=record.ticket_id,
            action=record.action.value,
            performed_by=record.performed_by,
            old_status=record.old_status.value if record.old_status is not None else None,
            new_status=record.new_status.value,
            notes=record.note,
            metadata_=dict(record.metadata),
            created_at=record.created_at,
        )

    @staticmethod
    def _row_to_audit(row: ClaimAuditTable) -> ClaimAuditRecord:
        return ClaimAuditRecord(
            id=row.id,
            ticket_id=row.ticket_id,
            action=AuditAction(row.action),
            performed_by=row.performed_by,
            old_status=TicketStatus(row.old_status) if row.old_status is not None else None,
            new_status=TicketStatus(row.new_status),
            created_at=row.created_at,
            note=row.notes,
            metadata=dict(row.metadata_ or {}),
        )
