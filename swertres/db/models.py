"""SQLModel table definitions for the settlement data layer."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


def _uuid_str() -> str:
    return str(uuid.uuid4())


class AccountTable(SQLModel, table=True):
    """Agents and staff; supplies claimer identity and roles."""

    __tablename__ = "accounts"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    username: str = Field(sa_column=Column(String(150), nullable=False, unique=True))
    full_name: str = Field(sa_column=Column(String(255), nullable=False))
    role: str = Field(sa_column=Column(String(50), nullable=False))
    phone: str | None = Field(default=None, sa_column=Column(String(50), nullable=True))
    address: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class DrawTable(SQLModel, table=True):
    """One of the three daily draws."""

    __tablename__ = "draws"
    __table_args__ = (UniqueConstraint("draw_date", "draw_time", name="uq_draws_date_time"),)

    id: int | None = Field(default=None, primary_key=True)
    draw_date: date = Field(sa_column=Column(Date, nullable=False))
    draw_time: str = Field(sa_column=Column(String(20), nullable=False))
    status: str = Field(sa_column=Column(String(20), nullable=False))
    winning_number: str | None = Field(default=None, sa_column=Column(String(3), nullable=True))


class TicketTable(SQLModel, table=True):
    """Issued tickets and their claim lifecycle columns."""

    __tablename__ = "tickets"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    ticket_number: str = Field(sa_column=Column(String(17), nullable=False, unique=True, index=True))
    status: str = Field(sa_column=Column(String(30), nullable=False))
    total_amount: Decimal = Field(sa_column=Column(Numeric(12, 2), nullable=False))
    reprint_count: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    draw_id: int = Field(sa_column=Column(Integer, ForeignKey("draws.id"), nullable=False, index=True))
    agent_id: str = Field(sa_column=Column(String(36), ForeignKey("accounts.id"), nullable=False))
    prize_amount: Decimal | None = Field(default=None, sa_column=Column(Numeric(14, 2), nullable=True))
    claimer_name: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    claimer_phone: str | None = Field(default=None, sa_column=Column(String(50), nullable=True))
    claimer_address: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    issued_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    claimed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    approval_requested_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    approval_requested_by: str | None = Field(default=None, sa_column=Column(String(36), nullable=True))
    approved_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    approved_by: str | None = Field(default=None, sa_column=Column(String(36), nullable=True))
    rejected_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    rejection_reason: str | None = Field(default=None, sa_column=Column(Text, nullable=True))


class WagerTable(SQLModel, table=True):
    """Individual bet lines; immutable after issue."""

    __tablename__ = "bets"

    id: str = Field(default_factory=_uuid_str, primary_key=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    sequence: int = Field(sa_column=Column(Integer, nullable=False))
    bet_type: str = Field(sa_column=Column(String(20), nullable=False))
    bet_combination: str = Field(sa_column=Column(String(3), nullable=False))
    bet_amount: Decimal = Field(sa_column=Column(Numeric(12, 2), nullable=False))


class ClaimAuditTable(SQLModel, table=True):
    """Append-only history of ticket status transitions."""

    __tablename__ = "claims_audit"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    action: str = Field(sa_column=Column(String(50), nullable=False))
    performed_by: str = Field(sa_column=Column(String(36), nullable=False))
    old_status: str | None = Field(default=None, sa_column=Column(String(30), nullable=True))
    new_status: str = Field(sa_column=Column(String(30), nullable=False))
    notes: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    metadata_: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column("metadata", JSON, nullable=False)
    )
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class ReprintTable(SQLModel, table=True):
    __tablename__ = "ticket_reprints"

    id: str = Field(default_factory=_uuid_str, primary_key=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    reprinted_by: str = Field(sa_column=Column(String(36), nullable=False))
    reprint_number: int = Field(sa_column=Column(Integer, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class RateLimitRow(SQLModel, table=True):
    """Fixed-window counters shared by every API worker."""

    __tablename__ = "rate_limits"

    key: str = Field(sa_column=Column(String(255), primary_key=True))
    count: int = Field(default=1, sa_column=Column(Integer, nullable=False, default=1))
    expires_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False, index=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False, default=_utcnow))
