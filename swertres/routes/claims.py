from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter
from pydantic import BaseModel, Field

from swertres.dependencies.auth import CurrentAccount
from swertres.dependencies.services import ClaimWorkflowDep
from swertres.routes.tickets import TicketModel

router = APIRouter(prefix="/claims", tags=["claims"])


class ApproveClaimRequest(BaseModel):
    prize_amount: Decimal | None = Field(default=None, ge=0)


class RejectClaimRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


@router.post("/{ticket_number}/approve", response_model=TicketModel, summary="Approve a pending claim")
async def approve_claim(
    ticket_number: str,
    workflow: ClaimWorkflowDep,
    account: CurrentAccount,
    payload: ApproveClaimRequest | None = None,
) -> TicketModel:
    prize_amount = payload.prize_amount if payload is not None else None
    ticket = await workflow.approve_claim(ticket_number, account, prize_amount=prize_amount)
    return TicketModel.from_entity(ticket)


@router.post("/{ticket_number}/reject", response_model=TicketModel, summary="Reject a pending claim")
async def reject_claim(
    ticket_number: str,
    payload: RejectClaimRequest,
    workflow: ClaimWorkflowDep,
    account: CurrentAccount,
) -> TicketModel:
    ticket = await workflow.reject_claim(ticket_number, account, payload.reason)
    return TicketModel.from_entity(ticket)
