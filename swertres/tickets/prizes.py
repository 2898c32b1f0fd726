from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from .errors import ValidationError
from .models import BetType, WinCategory, Wager
from .wins import WagerOutcome


@dataclass(slots=True, frozen=True)
class PrizeTable:
    """Unit prizes paid per unit of stake.

    A fully distinct rambolito combination has six winning permutations against
    three for a double, so its unit prize is half the double's.
    """

    standard: Decimal = Decimal("450")
    rambolito_double: Decimal = Decimal("150")
    rambolito_distinct: Decimal = Decimal("75")
    min_stake: Decimal = Decimal("1")
    max_stake: Decimal | None = Decimal("10000")

    def __post_init__(self) -> None:
        for name in ("standard", "rambolito_double", "rambolito_distinct"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} unit prize must be positive")
        if self.min_stake <= 0:
            raise ValueError("min_stake must be positive")
        if self.max_stake is not None and self.max_stake < self.min_stake:
            raise ValueError("max_stake must not be lower than min_stake")


class PrizeCalculator:
    """Price winning wagers against a configured :class:`PrizeTable`."""

    def __init__(self, table: PrizeTable | None = None) -> None:
        self._table = table or PrizeTable()

    @property
    def table(self) -> PrizeTable:
        return self._table

    def base_prize(self, bet_type: BetType, category: WinCategory) -> Decimal:
        if bet_type is BetType.STANDARD and category is WinCategory.STRAIGHT:
            return self._table.standard
        if bet_type is BetType.RAMBOLITO and category is WinCategory.RAMBOLITO_DOUBLE:
            return self._table.rambolito_double
        if bet_type is BetType.RAMBOLITO and category is WinCategory.RAMBOLITO_DISTINCT:
            return self._table.rambolito_distinct
        if category is WinCategory.NONE:
            return Decimal("0")
        raise ValidationError(f"Category {category.value} does not apply to {bet_type.value} wagers")

    def validate_stake(self, bet_amount: Decimal) -> Decimal:
        amount = Decimal(bet_amount)
        if amount < self._table.min_stake:
            raise ValidationError(f"Minimum stake is {self._table.min_stake}")
        if self._table.max_stake is not None and amount > self._table.max_stake:
            raise ValidationError(f"Maximum stake is {self._table.max_stake}")
        return amount

    def payout(self, bet_amount: Decimal, unit_prize: Decimal) -> Decimal:
        amount = self.validate_stake(bet_amount)
        return Decimal(unit_prize) * amount

    def price_wager(self, wager: Wager, category: WinCategory) -> Decimal:
        return self.payout(wager.bet_amount, self.base_prize(wager.bet_type, category))

    def ticket_prize(self, outcomes: Iterable[WagerOutcome]) -> Decimal:
        total = Decimal("0")
        for outcome in outcomes:
            if outcome.is_win:
                total += self.price_wager(outcome.wager, outcome.category)
        return total
