from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable, Mapping
from uuid import uuid4

from opentelemetry import trace

from .errors import (
    AlreadyClaimedError,
    AuthorizationError,
    NotFoundError,
    NotReprintableError,
    NotWinningError,
    RateLimitExceeded,
    ReprintLimitExceeded,
    StateConflictError,
    ValidationError,
)
from .events import ClaimApproved, ClaimRejected, ClaimRequested, EventSink, LoggingEventSink
from .identity import TicketIdentity, parse_display, validate_ticket_number
from .models import Account, AuditAction, ClaimAuditRecord, ReprintRecord, Ticket
from .prizes import PrizeCalculator
from .roles import ensure_claim_reviewer, ensure_ticket_access, is_supervising
from .state import CLAIMED_STATUSES, REPRINTABLE_STATUSES, TicketStateMachine, TicketStatus
from .storage import TicketStore
from .views import PrintPayload, TicketView, build_print_payload
from .wins import evaluate_wagers

if TYPE_CHECKING:
    from ..services.rate_limit import RateLimitStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_MAX_REPRINTS = 2
CLAIM_RATE_LIMIT_SCOPE = "claim"
REVIEW_RATE_LIMIT_SCOPE = "admin"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def transition_ticket(
    store: TicketStore,
    ticket: Ticket,
    *,
    new: TicketStatus,
    action: AuditAction,
    actor: str,
    at: datetime,
    changes: Mapping[str, Any] | None = None,
    note: str = "",
    metadata: Mapping[str, Any] | None = None,
) -> Ticket:
    """Move ``ticket`` to ``new`` if it is still in the status it was read with.

    The audit record is written by the same conditional update, so a lost race
    leaves neither a status change nor a history entry behind.
    """

    TicketStateMachine.assert_transition(ticket.status, new)
    audit = ClaimAuditRecord(
        id=str(uuid4()),
        ticket_id=ticket.id,
        action=action,
        performed_by=actor,
        old_status=ticket.status,
        new_status=new,
        created_at=at,
        note=note,
        metadata=dict(metadata or {}),
    )
    updated = await store.update_ticket_status(
        ticket.id, expected=ticket.status, new=new, changes=changes, audit=audit
    )
    if updated is None:
        logger.info(
            "Conditional update lost for ticket %s (%s -> %s)",
            ticket.ticket_number,
            ticket.status.value,
            new.value,
        )
        raise StateConflictError(
            f"Ticket {ticket.ticket_number} is no longer {ticket.status.value}; it changed concurrently"
        )
    return updated


@dataclass(slots=True)
class ClaimWorkflow:
    """Claim, review and reprint operations over stored tickets."""

    store: TicketStore
    identity: TicketIdentity = field(default_factory=TicketIdentity)
    prizes: PrizeCalculator = field(default_factory=PrizeCalculator)
    events: EventSink = field(default_factory=LoggingEventSink)
    rate_limiter: "RateLimitStore | None" = None
    max_reprints: int = DEFAULT_MAX_REPRINTS
    clock: Callable[[], datetime] = _utcnow

    def __post_init__(self) -> None:
        if not 0 <= self.max_reprints <= DEFAULT_MAX_REPRINTS:
            raise ValueError(f"max_reprints must be between 0 and {DEFAULT_MAX_REPRINTS}")

    async def search(self, ticket_number: str) -> TicketView:
        number = validate_ticket_number(parse_display(ticket_number))
        ticket = await self._load(number)
        return await self._view(ticket)

    async def verify_presentation(self, payload: str) -> TicketView:
        ticket_number, _ = self.identity.split_payload(payload)
        ticket = await self.store.find_ticket_by_number(ticket_number)
        self.identity.verify_integrity_hash(payload, ticket)
        return await self._view(ticket)

    async def audit_trail(self, ticket_number: str) -> list[ClaimAuditRecord]:
        ticket = await self._load(ticket_number)
        records = await self.store.list_audit_records(ticket.id)
        return sorted(records, key=lambda record: record.created_at)

    async def request_claim(self, ticket_number: str, requester: Account) -> Ticket:
        with tracer.start_as_current_span("claims.request") as span:
            span.set_attribute("ticket.number", ticket_number)
            await self._enforce_rate_limit(requester)

            ticket = await self._load(ticket_number)
            ensure_ticket_access(requester, ticket)
            if ticket.status in CLAIMED_STATUSES:
                raise AlreadyClaimedError(
                    f"Ticket {ticket.ticket_number} has already been claimed. Current status: {ticket.status.value}"
                )

            view = await self._view(ticket)
            if not view.is_winning:
                raise NotWinningError(f"Ticket {ticket.ticket_number} is not a winning ticket")
            if ticket.status is not TicketStatus.VALIDATED:
                raise StateConflictError(
                    f"Ticket {ticket.ticket_number} is {ticket.status.value}; only validated tickets can be claimed"
                )

            owner = await self.store.find_account(ticket.agent_id)
            if owner is None:
                raise NotFoundError(f"Owning agent {ticket.agent_id} not found")

            now = self.clock()
            updated = await transition_ticket(
                self.store,
                ticket,
                new=TicketStatus.PENDING_APPROVAL,
                action=AuditAction.CLAIM_REQUESTED,
                actor=requester.id,
                at=now,
                changes={
                    "claimer_name": owner.display_name,
                    "claimer_phone": owner.phone,
                    "claimer_address": owner.address,
                    "claimed_at": now,
                    "approval_requested_at": now,
                    "approval_requested_by": requester.id,
                    "prize_amount": ticket.prize_amount if ticket.prize_amount is not None else view.prize_amount,
                },
                note="Claim submitted for approval",
            )
            logger.info("Claim requested for ticket %s by %s", updated.ticket_number, requester.username)
            await self.events.publish(
                ClaimRequested(
                    ticket_number=updated.ticket_number,
                    agent_id=updated.agent_id,
                    claimer_name=updated.claimer_name or owner.display_name,
                    occurred_at=now,
                )
            )
            return updated

    async def approve_claim(
        self,
        ticket_number: str,
        approver: Account,
        prize_amount: Decimal | None = None,
    ) -> Ticket:
        with tracer.start_as_current_span("claims.approve") as span:
            span.set_attribute("ticket.number", ticket_number)
            ensure_claim_reviewer(approver)
            await self._enforce_rate_limit(approver, REVIEW_RATE_LIMIT_SCOPE)
            ticket = await self._load(ticket_number)
            if ticket.status is TicketStatus.PAID:
                logger.info("Ticket %s already paid; approval ignored", ticket.ticket_number)
                return ticket
            self._require_pending(ticket)

            prize = await self._resolve_prize(ticket, prize_amount)
            now = self.clock()
            updated, applied = await self._review_transition(
                ticket,
                new=TicketStatus.PAID,
                action=AuditAction.CLAIM_APPROVED,
                actor=approver.id,
                at=now,
                changes={"approved_at": now, "approved_by": approver.id, "prize_amount": prize},
                note="Claim approved",
                metadata={"prize_amount": str(prize)},
            )
            if not applied:
                return updated
            logger.info("Claim for ticket %s approved by %s", updated.ticket_number, approver.username)
            await self.events.publish(
                ClaimApproved(
                    ticket_number=updated.ticket_number,
                    agent_id=updated.agent_id,
                    approved_by=approver.id,
                    prize_amount=prize,
                    occurred_at=now,
                )
            )
            return updated

    async def reject_claim(self, ticket_number: str, approver: Account, reason: str) -> Ticket:
        with tracer.start_as_current_span("claims.reject") as span:
            span.set_attribute("ticket.number", ticket_number)
            ensure_claim_reviewer(approver)
            await self._enforce_rate_limit(approver, REVIEW_RATE_LIMIT_SCOPE)
            reason = (reason or "").strip()
            if not reason:
                raise ValidationError("A rejection reason is required")

            ticket = await self._load(ticket_number)
            if ticket.status is TicketStatus.CANCELLED:
                logger.info("Ticket %s already rejected; rejection ignored", ticket.ticket_number)
                return ticket
            self._require_pending(ticket)

            now = self.clock()
            updated, applied = await self._review_transition(
                ticket,
                new=TicketStatus.CANCELLED,
                action=AuditAction.CLAIM_REJECTED,
                actor=approver.id,
                at=now,
                changes={"rejected_at": now, "rejection_reason": reason},
                note=reason,
            )
            if not applied:
                return updated
            logger.info("Claim for ticket %s rejected by %s", updated.ticket_number, approver.username)
            await self.events.publish(
                ClaimRejected(
                    ticket_number=updated.ticket_number,
                    agent_id=updated.agent_id,
                    rejected_by=approver.id,
                    reason=reason,
                    occurred_at=now,
                )
            )
            return updated

    async def reprint(self, ticket_number: str, requester: Account) -> PrintPayload:
        with tracer.start_as_current_span("tickets.reprint") as span:
            span.set_attribute("ticket.number", ticket_number)
            ticket = await self._load(ticket_number)
            ensure_ticket_access(requester, ticket)
            self._check_reprintable(ticket)

            now = self.clock()
            record = ReprintRecord(
                id=str(uuid4()),
                ticket_id=ticket.id,
                reprinted_by=requester.id,
                reprint_number=ticket.reprint_count + 1,
                created_at=now,
            )
            updated = await self.store.increment_reprint_count(
                ticket.id,
                max_reprints=self.max_reprints,
                allowed=REPRINTABLE_STATUSES,
                record=record,
            )
            if updated is None:
                latest = await self._load(ticket.ticket_number)
                self._check_reprintable(latest)
                raise StateConflictError(f"Ticket {ticket.ticket_number} changed while reprinting")

            span.set_attribute("ticket.reprint_count", updated.reprint_count)
            logger.info(
                "Ticket %s reprinted by %s (%d/%d)",
                updated.ticket_number,
                requester.username,
                updated.reprint_count,
                self.max_reprints,
            )
            wagers = await self.store.find_wagers_by_ticket(updated.id)
            return build_print_payload(self.identity, updated, wagers, printed_at=now)

    async def expire(self, ticket_number: str, actor: Account, *, note: str = "") -> Ticket:
        if not is_supervising(actor.role):
            raise AuthorizationError(f"Role {actor.role.value} may not expire tickets")
        ticket = await self._load(ticket_number)
        if ticket.status is TicketStatus.EXPIRED:
            return ticket
        return await transition_ticket(
            self.store,
            ticket,
            new=TicketStatus.EXPIRED,
            action=AuditAction.EXPIRED,
            actor=actor.id,
            at=self.clock(),
            note=note or "Ticket expired",
        )

    async def _load(self, ticket_number: str) -> Ticket:
        ticket = await self.store.find_ticket_by_number(ticket_number)
        if ticket is None:
            raise NotFoundError(f"Ticket {ticket_number} not found")
        return ticket

    async def _view(self, ticket: Ticket) -> TicketView:
        wagers = await self.store.find_wagers_by_ticket(ticket.id)
        draw = await self.store.find_draw_by_id(ticket.draw_id)
        outcomes = []
        if draw is not None and draw.winning_number is not None:
            outcomes = evaluate_wagers(wagers, draw.winning_number)
        return TicketView(
            ticket=ticket,
            wagers=tuple(wagers),
            draw=draw,
            outcomes=tuple(outcomes),
            prize_amount=self.prizes.ticket_prize(outcomes),
        )

    async def _resolve_prize(self, ticket: Ticket, override: Decimal | None) -> Decimal:
        if override is not None:
            prize = Decimal(override)
            if prize < 0:
                raise ValidationError("Prize amount must not be negative")
            return prize
        if ticket.prize_amount is not None:
            return ticket.prize_amount
        view = await self._view(ticket)
        return view.prize_amount

    async def _review_transition(
        self, ticket: Ticket, *, new: TicketStatus, **kwargs: Any
    ) -> tuple[Ticket, bool]:
        # A concurrent reviewer that reached the same outcome first makes this call a no-op.
        try:
            return await transition_ticket(self.store, ticket, new=new, **kwargs), True
        except StateConflictError:
            latest = await self._load(ticket.ticket_number)
            if latest.status is new:
                return latest, False
            raise

    async def _enforce_rate_limit(self, requester: Account, scope: str = CLAIM_RATE_LIMIT_SCOPE) -> None:
        if self.rate_limiter is None:
            return
        decision = await self.rate_limiter.hit(requester.id, scope)
        if not decision.allowed:
            raise RateLimitExceeded(
                f"Too many {scope} requests, please try again later",
                retry_after_seconds=decision.retry_after_seconds,
            )

    @staticmethod
    def _require_pending(ticket: Ticket) -> None:
        if ticket.status is not TicketStatus.PENDING_APPROVAL:
            raise StateConflictError(
                f"Ticket {ticket.ticket_number} is {ticket.status.value}; only pending claims can be reviewed"
            )

    def _check_reprintable(self, ticket: Ticket) -> None:
        if ticket.status in (TicketStatus.PAID, TicketStatus.CANCELLED):
            raise NotReprintableError(f"Ticket {ticket.ticket_number} is {ticket.status.value} and cannot be reprinted")
        if ticket.status not in REPRINTABLE_STATUSES:
            raise StateConflictError(f"Ticket {ticket.ticket_number} is {ticket.status.value} and cannot be reprinted")
        if ticket.reprint_count >= self.max_reprints:
            raise ReprintLimitExceeded(
                f"Ticket {ticket.ticket_number} has reached the maximum of {self.max_reprints} reprints"
            )
