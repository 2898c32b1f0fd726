from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from swertres.core.config import Settings, get_settings
from swertres.services.rate_limit import RateLimitStore
from swertres.tickets.models import Account
from swertres.tickets.roles import Role, has_at_least
from swertres.tickets.storage import TicketStore

LOGIN_RATE_LIMIT_SCOPE = "login"

bearer_scheme = HTTPBearer(auto_error=False)


async def get_ticket_store(request: Request) -> TicketStore:
    store = getattr(request.app.state, "ticket_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Ticket store is not available")
    return store


TicketStoreDep = Annotated[TicketStore, Depends(get_ticket_store)]


async def _lookup_account(token: str | None, settings: Settings, store: TicketStore) -> Account:
    if token is None:
        raise HTTPException(status_code=401, detail="Missing authentication credentials")

    account_id = settings.api_tokens.get(token)
    if account_id is None:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")

    account = await store.find_account(account_id)
    if account is None:
        raise HTTPException(status_code=401, detail="Account no longer exists")
    return account


async def resolve_account_from_token(
    token: str | None,
    settings: Settings,
    store: TicketStore,
    *,
    rate_limiter: RateLimitStore | None = None,
    client: str = "",
) -> Account:
    """Return the account mapped to a bearer token in the settings.

    Only failed attempts count against the client's ``login`` window; once it
    is exhausted further failures answer 429 instead of 401.
    """

    try:
        return await _lookup_account(token, settings, store)
    except HTTPException:
        if rate_limiter is None or token is None:
            raise
        decision = await rate_limiter.hit(client, LOGIN_RATE_LIMIT_SCOPE)
        if not decision.allowed:
            raise HTTPException(
                status_code=429,
                detail="Too many failed authentication attempts",
                headers={"Retry-After": str(decision.retry_after_seconds)},
            ) from None
        raise


async def get_current_account(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
    store: TicketStoreDep,
) -> Account:
    cached = getattr(request.state, "account", None)
    if isinstance(cached, Account):
        return cached

    token = credentials.credentials if credentials is not None else None
    account = await resolve_account_from_token(
        token,
        settings,
        store,
        rate_limiter=getattr(request.app.state, "rate_limiter", None),
        client=request.client.host if request.client is not None else "",
    )
    request.state.account = account
    return account


def role_required(minimum: Role) -> Callable[[Account], Account]:
    """Dependency factory ensuring the caller holds at least ``minimum``."""

    async def dependency(account: Annotated[Account, Depends(get_current_account)]) -> Account:
        if not has_at_least(account.role, minimum):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return account

    return dependency


CurrentAccount = Annotated[Account, Depends(get_current_account)]
