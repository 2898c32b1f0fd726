"""Service layer exports."""

from .qr import QRRenderer, QRServerRenderer, QuickChartRenderer, select_renderer
from .rate_limit import (
    DEFAULT_POLICIES,
    InMemoryRateLimitStore,
    RateLimitDecision,
    RateLimitPolicy,
    RateLimitStore,
    SqlRateLimitStore,
)
from .repository import SqlTicketStore

__all__ = [
    "DEFAULT_POLICIES",
    "InMemoryRateLimitStore",
    "QRRenderer",
    "QRServerRenderer",
    "QuickChartRenderer",
    "RateLimitDecision",
    "RateLimitPolicy",
    "RateLimitStore",
    "SqlRateLimitStore",
    "SqlTicketStore",
    "select_renderer",
]
