"""Structured events handed to printing and notification collaborators."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TicketSettled:
    ticket_number: str
    draw_id: int
    agent_id: str
    winning_number: str
    prize_amount: Decimal
    occurred_at: datetime
    name: str = "ticket_settled"


@dataclass(slots=True, frozen=True)
class ClaimRequested:
    ticket_number: str
    agent_id: str
    claimer_name: str
    occurred_at: datetime
    name: str = "claim_requested"


@dataclass(slots=True, frozen=True)
class ClaimApproved:
    ticket_number: str
    agent_id: str
    approved_by: str
    prize_amount: Decimal
    occurred_at: datetime
    name: str = "claim_approved"


@dataclass(slots=True, frozen=True)
class ClaimRejected:
    ticket_number: str
    agent_id: str
    rejected_by: str
    reason: str
    occurred_at: datetime
    name: str = "claim_rejected"


SettlementEvent = TicketSettled | ClaimRequested | ClaimApproved | ClaimRejected


class EventSink(Protocol):
    async def publish(self, event: SettlementEvent) -> None:
        ...


class LoggingEventSink:
    """Default sink: record events in the application log."""

    async def publish(self, event: SettlementEvent) -> None:
        payload: dict[str, Any] = asdict(event)
        logger.info("Event %s: %s", event.name, payload)


class CollectingEventSink:
    """Keep published events in memory, mostly useful for tests and tooling."""

    def __init__(self) -> None:
        self.events: list[SettlementEvent] = []

    async def publish(self, event: SettlementEvent) -> None:
        self.events.append(event)
