from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter
from pydantic import BaseModel, Field

from swertres.dependencies.auth import CurrentAccount
from swertres.dependencies.services import DrawSettlementDep
from swertres.tickets.settlement import SettlementReport

router = APIRouter(prefix="/draws", tags=["draws"])


class SettleDrawRequest(BaseModel):
    winning_number: str = Field(pattern=r"^\d{3}$")


class CategoryTotalsModel(BaseModel):
    count: int
    amount: Decimal


class SettlementReportModel(BaseModel):
    draw_id: int
    winning_number: str
    evaluated: int
    validated: list[str]
    skipped: list[str]
    failures: dict[str, str]
    total_prize: Decimal
    breakdown: dict[str, CategoryTotalsModel]

    @classmethod
    def from_report(cls, report: SettlementReport) -> "SettlementReportModel":
        return cls(
            draw_id=report.draw_id,
            winning_number=report.winning_number,
            evaluated=report.evaluated,
            validated=list(report.validated),
            skipped=list(report.skipped),
            failures=dict(report.failures),
            total_prize=report.total_prize,
            breakdown={
                category.value: CategoryTotalsModel(count=totals.count, amount=totals.amount)
                for category, totals in report.breakdown.items()
            },
        )


@router.post("/{draw_id}/settle", response_model=SettlementReportModel, summary="Settle a draw")
async def settle_draw(
    draw_id: int,
    payload: SettleDrawRequest,
    settlement: DrawSettlementDep,
    account: CurrentAccount,
) -> SettlementReportModel:
    report = await settlement.settle(draw_id, payload.winning_number, account)
    return SettlementReportModel.from_report(report)
