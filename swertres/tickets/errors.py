from __future__ import annotations


class SettlementError(RuntimeError):
    """Base error for the settlement engine.

    ``kind`` is a stable discriminator the request layer maps to responses.
    """

    kind = "settlement_error"


class ValidationError(SettlementError):
    """Raised for malformed combinations, stakes or ticket numbers."""

    kind = "validation_error"


class NotFoundError(SettlementError):
    """Raised when a ticket, draw or account could not be located."""

    kind = "not_found"


class AuthorizationError(SettlementError):
    """Raised when the actor's role or ownership does not permit the action."""

    kind = "authorization_error"


class StateConflictError(SettlementError):
    """Raised when a transition is attempted from an unexpected status."""

    kind = "state_conflict"


class ReprintLimitExceeded(StateConflictError):
    """Raised once a ticket has used all of its reprints."""

    kind = "reprint_limit_exceeded"


class NotReprintableError(StateConflictError):
    """Raised when reprinting a paid or cancelled ticket."""

    kind = "not_reprintable"


class AlreadyClaimedError(StateConflictError):
    """Raised when a claim is requested for a ticket already in the claim flow."""

    kind = "already_claimed"


class NotWinningError(SettlementError):
    """Raised when a claim is requested for a ticket with no winning wager."""

    kind = "not_winning"


class IntegrityError(SettlementError):
    """Raised when a presented QR payload does not match the stored ticket."""

    kind = "integrity_error"


class RateLimitExceeded(SettlementError):
    """Raised when an identifier exhausted its window for a scope."""

    kind = "rate_limited"

    def __init__(self, message: str, *, retry_after_seconds: int = 0) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class DuplicateTicketNumberError(SettlementError):
    """Raised by storage when a generated ticket number already exists."""

    kind = "duplicate_ticket_number"
