from decimal import Decimal

import pytest

from swertres.tickets.errors import ValidationError
from swertres.tickets.models import BetType, Wager, WinCategory
from swertres.tickets.prizes import PrizeCalculator, PrizeTable
from swertres.tickets.wins import determine_win, evaluate_wagers


def test_standard_straight_scenario():
    calculator = PrizeCalculator()
    wager = Wager(bet_type=BetType.STANDARD, bet_combination="555", bet_amount=Decimal("10"))

    category = determine_win(wager, "555")

    assert category is WinCategory.STRAIGHT
    assert calculator.price_wager(wager, category) == calculator.table.standard * 10 == Decimal("4500")


def test_rambolito_double_scenario():
    calculator = PrizeCalculator()
    wager = Wager(bet_type=BetType.RAMBOLITO, bet_combination="344", bet_amount=Decimal("5"))

    category = determine_win(wager, "434")

    assert category is WinCategory.RAMBOLITO_DOUBLE
    assert calculator.price_wager(wager, category) == calculator.table.rambolito_double * 5 == Decimal("750")


def test_rambolito_distinct_pays_half_of_double():
    table = PrizeTable()
    calculator = PrizeCalculator(table)
    assert calculator.base_prize(BetType.RAMBOLITO, WinCategory.RAMBOLITO_DISTINCT) * 2 == table.rambolito_double
    assert calculator.base_prize(BetType.STANDARD, WinCategory.NONE) == Decimal("0")


def test_category_must_match_bet_type():
    with pytest.raises(ValidationError):
        PrizeCalculator().base_prize(BetType.STANDARD, WinCategory.RAMBOLITO_DOUBLE)


def test_stake_bounds_are_enforced():
    calculator = PrizeCalculator(PrizeTable(min_stake=Decimal("1"), max_stake=Decimal("100")))

    with pytest.raises(ValidationError):
        calculator.payout(Decimal("0.5"), Decimal("450"))
    with pytest.raises(ValidationError):
        calculator.payout(Decimal("101"), Decimal("450"))
    assert calculator.payout(Decimal("100"), Decimal("450")) == Decimal("45000")


def test_prize_table_rejects_nonsense():
    with pytest.raises(ValueError):
        PrizeTable(standard=Decimal("0"))
    with pytest.raises(ValueError):
        PrizeTable(min_stake=Decimal("10"), max_stake=Decimal("5"))


def test_ticket_prize_sums_only_winning_lines():
    calculator = PrizeCalculator()
    outcomes = evaluate_wagers(
        [
            Wager(bet_type=BetType.STANDARD, bet_combination="123", bet_amount=Decimal("2")),
            Wager(bet_type=BetType.RAMBOLITO, bet_combination="321", bet_amount=Decimal("4")),
            Wager(bet_type=BetType.STANDARD, bet_combination="999", bet_amount=Decimal("50")),
        ],
        "123",
    )

    assert calculator.ticket_prize(outcomes) == Decimal("450") * 2 + Decimal("75") * 4
