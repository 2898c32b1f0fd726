"""Ticket numbers, wager labels and tamper-evident QR payloads."""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
import secrets
import string
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable

from .errors import IntegrityError, NotFoundError, SettlementError, ValidationError
from .models import Ticket

logger = logging.getLogger(__name__)

TICKET_NUMBER_LENGTH = 17
# 13 digits of epoch milliseconds followed by 4 random digits.
_TIME_PREFIX_LENGTH = 13
_RANDOM_SUFFIX_LENGTH = TICKET_NUMBER_LENGTH - _TIME_PREFIX_LENGTH

_TICKET_NUMBER_PATTERN = re.compile(r"^\d{17}$")
_DEGENERATE_PATTERN = re.compile(r"^(\d)\1{16}$")
_SEQUENCE_LETTERS = string.ascii_uppercase
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def epoch_millis(value: datetime) -> int:
    """Return whole milliseconds since the epoch; naive values are read as UTC."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH) // timedelta(milliseconds=1)


def canonical_amount(amount: Decimal) -> str:
    """Render an amount without trailing zeros so ``10.00`` and ``10`` hash alike."""

    normalized = Decimal(amount).normalize()
    return format(normalized, "f")


def is_well_formed_ticket_number(candidate: str) -> bool:
    return bool(_TICKET_NUMBER_PATTERN.match(candidate)) and not _DEGENERATE_PATTERN.match(candidate)


def validate_ticket_number(candidate: str) -> str:
    if not _TICKET_NUMBER_PATTERN.match(candidate):
        raise ValidationError(f"Ticket number must be exactly {TICKET_NUMBER_LENGTH} digits")
    if _DEGENERATE_PATTERN.match(candidate):
        raise ValidationError("Invalid ticket number pattern")
    return candidate


def format_for_display(ticket_number: str) -> str:
    """Group a ticket number as ``XXXXX XXXXX XXXXX XX`` for printing."""

    return re.sub(r"^(\d{5})(\d{5})(\d{5})(\d{2})$", r"\1 \2 \3 \4", ticket_number)


def parse_display(value: str) -> str:
    return re.sub(r"\s+", "", value)


class TicketIdentity:
    """Generate and verify ticket identities.

    The QR payload is ``ticket_number + separator + hash`` where the hash is a
    truncated SHA-256 digest over the ticket's immutable fields.
    """

    def __init__(
        self,
        *,
        hash_length: int = 16,
        separator: str = "|",
        max_attempts: int = 10,
        clock: Callable[[], datetime] | None = None,
        randbelow: Callable[[int], int] | None = None,
    ) -> None:
        if not 8 <= hash_length <= 64:
            raise ValueError("hash_length must be between 8 and 64")
        if not separator or separator.isdigit():
            raise ValueError("separator must be a non-digit string")
        self._hash_length = hash_length
        self._separator = separator
        self._max_attempts = max(1, max_attempts)
        self._clock = clock or _utcnow
        self._randbelow = randbelow or secrets.randbelow

    @property
    def separator(self) -> str:
        return self._separator

    def generate_ticket_number(self) -> str:
        for attempt in range(1, self._max_attempts + 1):
            millis = epoch_millis(self._clock())
            prefix = str(millis)[-_TIME_PREFIX_LENGTH:].rjust(_TIME_PREFIX_LENGTH, "0")
            suffix = str(self._randbelow(10**_RANDOM_SUFFIX_LENGTH)).rjust(_RANDOM_SUFFIX_LENGTH, "0")
            candidate = prefix + suffix
            if is_well_formed_ticket_number(candidate):
                return candidate
            logger.debug("Discarding degenerate ticket number on attempt %d", attempt)
        raise SettlementError("Unable to derive a well-formed ticket number")

    @staticmethod
    def sequence_label(index: int) -> str:
        if index < 0:
            raise ValidationError("Sequence index must not be negative")
        return _SEQUENCE_LETTERS[index % len(_SEQUENCE_LETTERS)]

    def compute_integrity_hash(self, ticket: Ticket) -> str:
        material = ":".join(
            (
                ticket.ticket_number,
                canonical_amount(ticket.total_amount),
                str(ticket.draw_id),
                str(ticket.agent_id),
                str(epoch_millis(ticket.issued_at)),
            )
        )
        digest = hashlib.sha256(material.encode("utf-8")).hexdigest()
        return digest[: self._hash_length]

    def qr_payload(self, ticket: Ticket) -> str:
        return f"{ticket.ticket_number}{self._separator}{self.compute_integrity_hash(ticket)}"

    def split_payload(self, payload: str) -> tuple[str, str]:
        ticket_number, separator, provided_hash = payload.strip().partition(self._separator)
        if not separator or not ticket_number or not provided_hash:
            raise IntegrityError("Invalid QR payload format")
        return ticket_number, provided_hash

    def verify_integrity_hash(self, payload: str, stored_ticket: Ticket | None) -> bool:
        ticket_number, provided_hash = self.split_payload(payload)
        if stored_ticket is None:
            raise NotFoundError(f"Ticket {ticket_number} not found")
        if ticket_number != stored_ticket.ticket_number:
            raise IntegrityError("Ticket number mismatch")

        expected = self.compute_integrity_hash(stored_ticket)
        if not hmac.compare_digest(provided_hash.encode("utf-8"), expected.encode("utf-8")):
            logger.warning("QR hash mismatch for ticket %s", ticket_number)
            raise IntegrityError("Invalid or tampered QR payload")
        return True
