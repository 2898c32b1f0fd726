"""Storage port consumed by the engine and an in-memory implementation."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any, Collection, Mapping, Protocol, Sequence

from .errors import DuplicateTicketNumberError
from .models import Account, ClaimAuditRecord, Draw, DrawStatus, ReprintRecord, Ticket, Wager
from .state import TicketStatus


class TicketStore(Protocol):
    """Persistence operations the engine depends on.

    ``update_ticket_status`` and ``increment_reprint_count`` are conditional
    updates: they return ``None`` when the stored row no longer matches the
    expectation instead of applying the change.
    """

    async def find_ticket_by_number(self, ticket_number: str) -> Ticket | None:
        ...

    async def find_wagers_by_ticket(self, ticket_id: str) -> list[Wager]:
        ...

    async def find_draw_by_id(self, draw_id: int) -> Draw | None:
        ...

    async def find_account(self, account_id: str) -> Account | None:
        ...

    async def list_tickets_for_draw(self, draw_id: int) -> list[Ticket]:
        ...

    async def insert_ticket(
        self, ticket: Ticket, wagers: Sequence[Wager], audit: ClaimAuditRecord
    ) -> Ticket:
        ...

    async def update_ticket_status(
        self,
        ticket_id: str,
        *,
        expected: TicketStatus,
        new: TicketStatus,
        changes: Mapping[str, Any] | None = None,
        audit: ClaimAuditRecord | None = None,
    ) -> Ticket | None:
        ...

    async def increment_reprint_count(
        self,
        ticket_id: str,
        *,
        max_reprints: int,
        allowed: Collection[TicketStatus],
        record: ReprintRecord,
    ) -> Ticket | None:
        ...

    async def append_audit_record(self, record: ClaimAuditRecord) -> None:
        ...

    async def list_audit_records(self, ticket_id: str) -> list[ClaimAuditRecord]:
        ...

    async def list_reprint_records(self, ticket_id: str) -> list[ReprintRecord]:
        ...

    async def record_winning_number(self, draw_id: int, winning_number: str) -> Draw | None:
        ...


class InMemoryTicketStore:
    """Lock-guarded store suitable for tests and single-process tooling."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._tickets: dict[str, Ticket] = {}
        self._numbers: dict[str, str] = {}
        self._wagers: dict[str, list[Wager]] = {}
        self._draws: dict[int, Draw] = {}
        self._accounts: dict[str, Account] = {}
        self._audit: list[ClaimAuditRecord] = []
        self._reprints: list[ReprintRecord] = []

    def add_account(self, account: Account) -> None:
        self._accounts[account.id] = account

    def add_draw(self, draw: Draw) -> None:
        self._draws[draw.id] = draw

    async def find_ticket_by_number(self, ticket_number: str) -> Ticket | None:
        ticket_id = self._numbers.get(ticket_number)
        if ticket_id is None:
            return None
        return replace(self._tickets[ticket_id])

    async def find_wagers_by_ticket(self, ticket_id: str) -> list[Wager]:
        return sorted(self._wagers.get(ticket_id, []), key=lambda wager: wager.sequence)

    async def find_draw_by_id(self, draw_id: int) -> Draw | None:
        draw = self._draws.get(draw_id)
        return replace(draw) if draw is not None else None

    async def find_account(self, account_id: str) -> Account | None:
        return self._accounts.get(account_id)

    async def list_tickets_for_draw(self, draw_id: int) -> list[Ticket]:
        return [replace(ticket) for ticket in self._tickets.values() if ticket.draw_id == draw_id]

    async def insert_ticket(
        self, ticket: Ticket, wagers: Sequence[Wager], audit: ClaimAuditRecord
    ) -> Ticket:
        async with self._lock:
            if ticket.ticket_number in self._numbers:
                raise DuplicateTicketNumberError(f"Ticket number {ticket.ticket_number} already exists")
            self._tickets[ticket.id] = replace(ticket)
            self._numbers[ticket.ticket_number] = ticket.id
            self._wagers[ticket.id] = [replace(wager, ticket_id=ticket.id) for wager in wagers]
            self._audit.append(audit)
            return replace(ticket)

    async def update_ticket_status(
        self,
        ticket_id: str,
        *,
        expected: TicketStatus,
        new: TicketStatus,
        changes: Mapping[str, Any] | None = None,
        audit: ClaimAuditRecord | None = None,
    ) -> Ticket | None:
        async with self._lock:
            current = self._tickets.get(ticket_id)
            if current is None or current.status != expected:
                return None
            updated = replace(current, status=new, **dict(changes or {}))
            self._tickets[ticket_id] = updated
            if audit is not None:
                self._audit.append(audit)
            return replace(updated)

    async def increment_reprint_count(
        self,
        ticket_id: str,
        *,
        max_reprints: int,
        allowed: Collection[TicketStatus],
        record: ReprintRecord,
    ) -> Ticket | None:
        async with self._lock:
            current = self._tickets.get(ticket_id)
            if current is None or current.status not in allowed or current.reprint_count >= max_reprints:
                return None
            updated = replace(current, reprint_count=current.reprint_count + 1)
            self._tickets[ticket_id] = updated
            self._reprints.append(replace(record, reprint_number=updated.reprint_count))
            return replace(updated)

    async def append_audit_record(self, record: ClaimAuditRecord) -> None:
        async with self._lock:
            self._audit.append(record)

    async def list_audit_records(self, ticket_id: str) -> list[ClaimAuditRecord]:
        return [record for record in self._audit if record.ticket_id == ticket_id]

    async def list_reprint_records(self, ticket_id: str) -> list[ReprintRecord]:
        return [record for record in self._reprints if record.ticket_id == ticket_id]

    async def record_winning_number(self, draw_id: int, winning_number: str) -> Draw | None:
        async with self._lock:
            draw = self._draws.get(draw_id)
            if draw is None:
                return None
            if draw.winning_number not in (None, winning_number):
                return None
            updated = replace(draw, winning_number=winning_number, status=DrawStatus.COMPLETED)
            self._draws[draw_id] = updated
            return replace(updated)
