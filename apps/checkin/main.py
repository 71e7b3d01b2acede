from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from apps.checkin.admission import (
    AdmissionEngine,
    AdmissionStateMachine,
    EventMembershipDirectory,
    GateService,
    ScanLedger,
    StatsAggregator,
    TicketStore,
)
from apps.checkin.core.config import Settings, get_settings
from apps.checkin.core.logging import configure_logging, init_tracer, shutdown_tracer
from apps.checkin.metrics import metrics_registry
from apps.checkin.routes import ping, stats, tickets
from apps.checkin.services.database import Database


def build_gate_service(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    tickets: TicketStore | None = None,
) -> GateService:
    """Wire store, ledger, engine and aggregator around one session factory."""

    ticket_store = tickets or TicketStore(session_factory)
    ledger = ScanLedger(session_factory)
    engine = AdmissionEngine(
        ticket_store,
        ledger,
        state_machine=AdmissionStateMachine(allow_reentry=settings.allow_reentry),
        max_attempts=settings.admission_max_attempts,
        metrics=metrics_registry,
    )
    aggregator = StatsAggregator(
        ticket_store,
        ledger,
        membership=EventMembershipDirectory(session_factory),
        locale=settings.time_ago_locale,
        max_activity=settings.activity_max_limit,
    )
    return GateService(engine, aggregator, ticket_store, ledger, metrics=metrics_registry)


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    database = Database(
        dsn=settings.postgres_dsn,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
    )
    app.state.logger = logger
    app.state.tracer_provider = tracer_provider
    app.state.database = database
    app.state.gate_service = None
    try:
        await database.start()
        ticket_store = TicketStore(database.session_factory, engine=database.engine)
        if settings.auto_create_schema:
            await ticket_store.ensure_schema()
        app.state.gate_service = build_gate_service(settings, database.session_factory, tickets=ticket_store)
    except (SQLAlchemyError, OSError):
        logger.exception("Gate service initialisation failed; admission endpoints will answer 503")
    try:
        yield
    finally:
        await database.close()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.include_router(ping.router)
    app.include_router(tickets.router)
    app.include_router(stats.router)
    return app


app = create_app()
