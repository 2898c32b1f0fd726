from typing import Annotated

from fastapi import Depends, HTTPException, Request

from swertres.services.qr import QRRenderer
from swertres.tickets.issuance import TicketIssuer
from swertres.tickets.settlement import DrawSettlement
from swertres.tickets.workflow import ClaimWorkflow


def _from_state(request: Request, name: str, label: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(status_code=503, detail=f"{label} is not available")
    return service


async def get_claim_workflow(request: Request) -> ClaimWorkflow:
    return _from_state(request, "claim_workflow", "Claim workflow")


async def get_draw_settlement(request: Request) -> DrawSettlement:
    return _from_state(request, "draw_settlement", "Draw settlement")


async def get_ticket_issuer(request: Request) -> TicketIssuer:
    return _from_state(request, "ticket_issuer", "Ticket issuer")


async def get_qr_renderer(request: Request) -> QRRenderer:
    return _from_state(request, "qr_renderer", "QR renderer")


ClaimWorkflowDep = Annotated[ClaimWorkflow, Depends(get_claim_workflow)]
DrawSettlementDep = Annotated[DrawSettlement, Depends(get_draw_settlement)]
TicketIssuerDep = Annotated[TicketIssuer, Depends(get_ticket_issuer)]
QRRendererDep = Annotated[QRRenderer, Depends(get_qr_renderer)]
