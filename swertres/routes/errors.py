"""Translate engine errors into HTTP responses."""

from fastapi import Request
from fastapi.responses import JSONResponse

from swertres.tickets.errors import RateLimitExceeded, SettlementError, StateConflictError

STATUS_BY_KIND: dict[str, int] = {
    "validation_error": 422,
    "not_winning": 422,
    "integrity_error": 422,
    "not_found": 404,
    "authorization_error": 403,
    "rate_limited": 429,
}


def status_for(exc: SettlementError) -> int:
    if exc.kind in STATUS_BY_KIND:
        return STATUS_BY_KIND[exc.kind]
    if isinstance(exc, StateConflictError):
        return 409
    return 500


async def settlement_error_handler(request: Request, exc: SettlementError) -> JSONResponse:
    headers: dict[str, str] = {}
    if isinstance(exc, RateLimitExceeded) and exc.retry_after_seconds:
        headers["Retry-After"] = str(exc.retry_after_seconds)
    return JSONResponse(
        status_code=status_for(exc),
        content={"kind": exc.kind, "detail": str(exc)},
        headers=headers or None,
    )
