"""Database models and utilities."""

from .models import (
    AccountTable,
    ClaimAuditTable,
    DrawTable,
    RateLimitRow,
    ReprintTable,
    TicketTable,
    WagerTable,
)

__all__ = [
    "AccountTable",
    "ClaimAuditTable",
    "DrawTable",
    "RateLimitRow",
    "ReprintTable",
    "TicketTable",
    "WagerTable",
]
