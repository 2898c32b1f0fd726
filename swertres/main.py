from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from swertres.core.config import Settings, get_settings
from swertres.core.logging import configure_logging, init_tracer, shutdown_tracer
from swertres.routes import claims, draws, ping, tickets
from swertres.routes.errors import settlement_error_handler
from swertres.services.qr import QRServerRenderer, QuickChartRenderer, select_renderer
from swertres.services.rate_limit import (
    InMemoryRateLimitStore,
    RateLimitStore,
    SqlRateLimitStore,
    policies_from_settings,
)
from swertres.services.repository import SqlTicketStore
from swertres.tickets.errors import SettlementError
from swertres.tickets.identity import TicketIdentity
from swertres.tickets.issuance import TicketIssuer
from swertres.tickets.prizes import PrizeCalculator, PrizeTable
from swertres.tickets.settlement import DrawSettlement
from swertres.tickets.storage import TicketStore
from swertres.tickets.workflow import ClaimWorkflow


def _to_asyncpg_dsn(dsn: str) -> str:
    """Ensure the SQLAlchemy DSN uses the asyncpg driver."""

    if dsn.startswith("postgresql+asyncpg://"):
        return dsn
    if dsn.startswith("postgresql://"):
        return "postgresql+asyncpg://" + dsn[len("postgresql://") :]
    return dsn


@dataclass(slots=True)
class EngineServices:
    workflow: ClaimWorkflow
    settlement: DrawSettlement
    issuer: TicketIssuer


def build_services(
    settings: Settings,
    store: TicketStore,
    *,
    rate_limiter: RateLimitStore | None = None,
) -> EngineServices:
    """Wire the engine components from settings around a storage port."""

    prizes = PrizeCalculator(
        PrizeTable(
            standard=settings.prize_standard,
            rambolito_double=settings.prize_rambolito_double,
            rambolito_distinct=settings.prize_rambolito_distinct,
            min_stake=settings.min_stake,
            max_stake=settings.max_stake,
        )
    )
    identity = TicketIdentity(hash_length=settings.hash_length, separator=settings.qr_separator)
    return EngineServices(
        workflow=ClaimWorkflow(
            store=store,
            identity=identity,
            prizes=prizes,
            rate_limiter=rate_limiter,
            max_reprints=settings.max_reprints,
        ),
        settlement=DrawSettlement(store=store, prizes=prizes),
        issuer=TicketIssuer(
            store=store,
            identity=identity,
            prizes=prizes,
            max_attempts=settings.ticket_number_attempts,
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    app.state.logger = logger
    app.state.tracer_provider = tracer_provider
    app.state.db_engine = None
    app.state.db_session_factory = None
    app.state.ticket_store = None
    app.state.claim_workflow = None
    app.state.draw_settlement = None
    app.state.ticket_issuer = None

    db_engine = None
    try:
        db_engine = create_async_engine(
            _to_asyncpg_dsn(settings.postgres_dsn), echo=settings.database_echo, future=True
        )
        session_factory = async_sessionmaker(db_engine, expire_on_commit=False)
        store = SqlTicketStore(session_factory, engine=db_engine)
        if settings.create_schema:
            await store.ensure_schema()

        policies = policies_from_settings(settings.rate_limit_policies)
        if settings.rate_limit_backend == "database":
            rate_limiter: RateLimitStore = SqlRateLimitStore(session_factory, policies)
        else:
            rate_limiter = InMemoryRateLimitStore(policies)

        services = build_services(settings, store, rate_limiter=rate_limiter)
        app.state.db_engine = db_engine
        app.state.db_session_factory = session_factory
        app.state.ticket_store = store
        app.state.rate_limiter = rate_limiter
        app.state.claim_workflow = services.workflow
        app.state.draw_settlement = services.settlement
        app.state.ticket_issuer = services.issuer
    except Exception:  # pragma: no cover - service initialisation best effort
        logger.exception("Settlement services failed to initialise")
        if db_engine is not None:
            await db_engine.dispose()
            db_engine = None

    async with httpx.AsyncClient() as client:
        app.state.qr_renderer = await select_renderer(
            [QuickChartRenderer(settings.qr_primary_url), QRServerRenderer(settings.qr_fallback_url)],
            client=client,
            timeout=settings.qr_probe_timeout,
        )

    try:
        yield
    finally:
        if db_engine is not None:
            await db_engine.dispose()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.add_exception_handler(SettlementError, settlement_error_handler)
    app.include_router(ping.router)
    app.include_router(tickets.router)
    app.include_router(claims.router)
    app.include_router(draws.router)
    return app


app = create_app()
