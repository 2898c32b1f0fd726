from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import text

from swertres.dependencies.auth import CurrentAccount, role_required
from swertres.tickets.roles import Role

router = APIRouter(prefix="/ping", tags=["health"])


@router.get("", summary="Public health probe")
async def ping() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/ready", summary="Database readiness probe")
async def ready(request: Request) -> dict[str, str]:
    session_factory = getattr(request.app.state, "db_session_factory", None)
    if session_factory is None:
        return {"status": "ok", "database": "disabled"}
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:  # pragma: no cover - driver specific errors
        raise HTTPException(status_code=503, detail="Database unavailable") from exc
    return {"status": "ok", "database": "ok"}


@router.get(
    "/secure",
    summary="Authenticated probe for supervising roles",
    dependencies=[Depends(role_required(Role.AREA_COORDINATOR))],
)
async def secure_ping(account: CurrentAccount) -> dict[str, str]:
    return {"status": "ok", "user": account.username, "role": account.role.value}
