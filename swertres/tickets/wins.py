"""Pure win determination for standard and rambolito wagers.

Nothing here touches shared state, so the functions may run concurrently over
every wager of a draw.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from itertools import permutations
from typing import Iterable

from .errors import ValidationError
from .models import BetType, WinCategory, Wager

_COMBINATION_PATTERN = re.compile(r"^\d{3}$")


def is_valid_combination(combo: str, bet_type: BetType) -> bool:
    if not isinstance(combo, str) or not _COMBINATION_PATTERN.match(combo):
        return False
    if bet_type is BetType.RAMBOLITO and len(set(combo)) == 1:
        return False
    return True


def validate_combination(combo: str, bet_type: BetType) -> str:
    if not isinstance(combo, str) or not _COMBINATION_PATTERN.match(combo):
        raise ValidationError("Bet combination must be exactly 3 digits")
    if bet_type is BetType.RAMBOLITO and len(set(combo)) == 1:
        raise ValidationError("Triple numbers are not allowed for rambolito")
    return combo


def validate_winning_number(value: str) -> str:
    if not isinstance(value, str) or not _COMBINATION_PATTERN.match(value):
        raise ValidationError("Winning number must be exactly 3 digits")
    return value


def enumerate_winning_permutations(combo: str, bet_type: BetType) -> frozenset[str]:
    validate_combination(combo, bet_type)
    if bet_type is BetType.STANDARD:
        return frozenset({combo})
    return frozenset("".join(digits) for digits in permutations(combo))


def _rambolito_category(combo: str) -> WinCategory:
    # Triples are rejected upstream; two distinct digits means one is repeated.
    if len(set(combo)) == 2:
        return WinCategory.RAMBOLITO_DOUBLE
    return WinCategory.RAMBOLITO_DISTINCT


def determine_win(wager: Wager, winning_number: str) -> WinCategory:
    validate_winning_number(winning_number)
    candidates = enumerate_winning_permutations(wager.bet_combination, wager.bet_type)
    if winning_number not in candidates:
        return WinCategory.NONE
    if wager.bet_type is BetType.STANDARD:
        return WinCategory.STRAIGHT
    if wager.bet_type is BetType.RAMBOLITO:
        return _rambolito_category(wager.bet_combination)
    raise ValidationError(f"Unsupported bet type: {wager.bet_type!r}")


@dataclass(slots=True, frozen=True)
class WagerOutcome:
    wager: Wager
    category: WinCategory

    @property
    def is_win(self) -> bool:
        return self.category.is_win


def evaluate_wagers(wagers: Iterable[Wager], winning_number: str) -> list[WagerOutcome]:
    return [WagerOutcome(wager=wager, category=determine_win(wager, winning_number)) for wager in wagers]
