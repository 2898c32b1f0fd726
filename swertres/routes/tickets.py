from __future__ import annotations

from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from swertres.dependencies.auth import CurrentAccount, role_required
from swertres.dependencies.services import ClaimWorkflowDep, QRRendererDep, TicketIssuerDep
from swertres.tickets.identity import format_for_display
from swertres.tickets.issuance import IssuedTicket
from swertres.tickets.models import BetType, ClaimAuditRecord, Ticket, Wager
from swertres.tickets.roles import Role, ensure_ticket_access
from swertres.tickets.state import TicketStatus
from swertres.tickets.views import PrintPayload, TicketView

router = APIRouter(prefix="/tickets", tags=["tickets"])


class WagerModel(BaseModel):
    sequence: int
    bet_type: BetType
    bet_combination: str
    bet_amount: Decimal
    category: str | None = None

    @classmethod
    def from_entity(cls, wager: Wager, category: str | None = None) -> "WagerModel":
        return cls(
            sequence=wager.sequence,
            bet_type=wager.bet_type,
            bet_combination=wager.bet_combination,
            bet_amount=wager.bet_amount,
            category=category,
        )


class TicketModel(BaseModel):
    id: str
    ticket_number: str
    display_number: str
    status: TicketStatus
    total_amount: Decimal
    draw_id: int
    agent_id: str
    reprint_count: int
    prize_amount: Decimal | None = None
    claimer_name: str | None = None
    claimed_at: str | None = None
    approved_at: str | None = None
    approved_by: str | None = None
    rejected_at: str | None = None
    rejection_reason: str | None = None
    issued_at: str

    @classmethod
    def from_entity(cls, ticket: Ticket) -> "TicketModel":
        def _iso(value: Any) -> str | None:
            return value.isoformat() if value is not None else None

        return cls(
            id=ticket.id,
            ticket_number=ticket.ticket_number,
            display_number=format_for_display(ticket.ticket_number),
            status=ticket.status,
            total_amount=ticket.total_amount,
            draw_id=ticket.draw_id,
            agent_id=ticket.agent_id,
            reprint_count=ticket.reprint_count,
            prize_amount=ticket.prize_amount,
            claimer_name=ticket.claimer_name,
            claimed_at=_iso(ticket.claimed_at),
            approved_at=_iso(ticket.approved_at),
            approved_by=ticket.approved_by,
            rejected_at=_iso(ticket.rejected_at),
            rejection_reason=ticket.rejection_reason,
            issued_at=ticket.issued_at.isoformat(),
        )


class TicketViewModel(BaseModel):
    ticket: TicketModel
    wagers: list[WagerModel]
    winning_number: str | None = None
    is_winning: bool
    prize_amount: Decimal

    @classmethod
    def from_view(cls, view: TicketView) -> "TicketViewModel":
        categories = {outcome.wager.sequence: outcome.category.value for outcome in view.outcomes}
        return cls(
            ticket=TicketModel.from_entity(view.ticket),
            wagers=[WagerModel.from_entity(wager, categories.get(wager.sequence)) for wager in view.wagers],
            winning_number=view.draw.winning_number if view.draw is not None else None,
            is_winning=view.is_winning,
            prize_amount=view.prize_amount,
        )


class PrintLineModel(BaseModel):
    sequence_label: str
    bet_type: str
    bet_combination: str
    bet_amount: Decimal


class PrintPayloadModel(BaseModel):
    ticket_number: str
    display_number: str
    qr_payload: str
    draw_id: int
    total_amount: Decimal
    reprint_count: int
    lines: list[PrintLineModel]
    printed_at: str

    @classmethod
    def from_payload(cls, payload: PrintPayload) -> "PrintPayloadModel":
        return cls(
            ticket_number=payload.ticket_number,
            display_number=payload.display_number,
            qr_payload=payload.qr_payload,
            draw_id=payload.draw_id,
            total_amount=payload.total_amount,
            reprint_count=payload.reprint_count,
            lines=[
                PrintLineModel(
                    sequence_label=line.sequence_label,
                    bet_type=line.bet_type,
                    bet_combination=line.bet_combination,
                    bet_amount=line.bet_amount,
                )
                for line in payload.lines
            ],
            printed_at=payload.printed_at.isoformat(),
        )


class AuditRecordModel(BaseModel):
    id: str
    action: str
    performed_by: str
    old_status: TicketStatus | None = None
    new_status: TicketStatus
    note: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: str

    @classmethod
    def from_entity(cls, record: ClaimAuditRecord) -> "AuditRecordModel":
        return cls(
            id=record.id,
            action=record.action.value,
            performed_by=record.performed_by,
            old_status=record.old_status,
            new_status=record.new_status,
            note=record.note,
            metadata=dict(record.metadata),
            created_at=record.created_at.isoformat(),
        )


class WagerRequest(BaseModel):
    bet_type: BetType
    bet_combination: str = Field(min_length=3, max_length=3)
    bet_amount: Decimal = Field(gt=0)


class IssueTicketRequest(BaseModel):
    draw_id: int
    wagers: list[WagerRequest] = Field(min_length=1)


class IssuedTicketModel(BaseModel):
    ticket: TicketModel
    print_payload: PrintPayloadModel

    @classmethod
    def from_issued(cls, issued: IssuedTicket) -> "IssuedTicketModel":
        return cls(
            ticket=TicketModel.from_entity(issued.ticket),
            print_payload=PrintPayloadModel.from_payload(issued.print_payload),
        )


class VerifyRequest(BaseModel):
    payload: str = Field(min_length=1)


class QRImageModel(BaseModel):
    renderer: str
    qr_payload: str
    image_url: str


@router.post("", response_model=IssuedTicketModel, status_code=status.HTTP_201_CREATED)
async def issue_ticket(
    payload: IssueTicketRequest,
    issuer: TicketIssuerDep,
    account: CurrentAccount,
) -> IssuedTicketModel:
    wagers = [
        Wager(bet_type=item.bet_type, bet_combination=item.bet_combination, bet_amount=item.bet_amount)
        for item in payload.wagers
    ]
    issued = await issuer.issue(account, payload.draw_id, wagers)
    return IssuedTicketModel.from_issued(issued)


@router.get("/search/{ticket_number}", response_model=TicketViewModel, summary="Look up a ticket by number")
async def search_ticket(ticket_number: str, workflow: ClaimWorkflowDep, account: CurrentAccount) -> TicketViewModel:
    view = await workflow.search(ticket_number)
    return TicketViewModel.from_view(view)


@router.post("/verify", response_model=TicketViewModel, summary="Verify a scanned QR payload")
async def verify_ticket(payload: VerifyRequest, workflow: ClaimWorkflowDep, account: CurrentAccount) -> TicketViewModel:
    view = await workflow.verify_presentation(payload.payload)
    return TicketViewModel.from_view(view)


@router.post("/{ticket_number}/claim", response_model=TicketModel)
async def request_claim(ticket_number: str, workflow: ClaimWorkflowDep, account: CurrentAccount) -> TicketModel:
    ticket = await workflow.request_claim(ticket_number, account)
    return TicketModel.from_entity(ticket)


@router.post("/{ticket_number}/reprint", response_model=PrintPayloadModel)
async def reprint_ticket(ticket_number: str, workflow: ClaimWorkflowDep, account: CurrentAccount) -> PrintPayloadModel:
    payload = await workflow.reprint(ticket_number, account)
    return PrintPayloadModel.from_payload(payload)


@router.post(
    "/{ticket_number}/expire",
    response_model=TicketModel,
    dependencies=[Depends(role_required(Role.AREA_COORDINATOR))],
)
async def expire_ticket(ticket_number: str, workflow: ClaimWorkflowDep, account: CurrentAccount) -> TicketModel:
    ticket = await workflow.expire(ticket_number, account)
    return TicketModel.from_entity(ticket)


@router.get("/{ticket_number}/audit", response_model=list[AuditRecordModel])
async def ticket_audit_trail(
    ticket_number: str, workflow: ClaimWorkflowDep, account: CurrentAccount
) -> list[AuditRecordModel]:
    view = await workflow.search(ticket_number)
    ensure_ticket_access(account, view.ticket)
    records = await workflow.audit_trail(view.ticket.ticket_number)
    return [AuditRecordModel.from_entity(record) for record in records]


@router.get("/{ticket_number}/qr", response_model=QRImageModel)
async def ticket_qr(
    ticket_number: str,
    workflow: ClaimWorkflowDep,
    renderer: QRRendererDep,
    account: CurrentAccount,
) -> QRImageModel:
    view = await workflow.search(ticket_number)
    ensure_ticket_access(account, view.ticket)
    qr_payload = workflow.identity.qr_payload(view.ticket)
    return QRImageModel(renderer=renderer.name, qr_payload=qr_payload, image_url=renderer.image_url(qr_payload))
