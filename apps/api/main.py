import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from apps.api.core.config import Settings, get_settings
from apps.api.core.database import SessionFactory, create_engine_and_factory, ensure_schema
from apps.api.core.logging import configure_logging, init_tracer, shutdown_tracer
from apps.api.ledger import (
    BillingService,
    RenewalService,
    ServiceLevelService,
    ThresholdNotifier,
    VolumeAccountant,
)
from apps.api.middleware import RBACMiddleware
from apps.api.notifications import (
    EventDispatcher,
    LoggingEmailSender,
    RecipientDirectory,
    SQLNotificationStore,
)
from apps.api.routes import billing, ping, service_levels, tickets, work_entries
from apps.api.tickets import TicketService


def install_services(app: FastAPI, settings: Settings, session_factory: SessionFactory) -> None:
    """Build the services on top of ``session_factory`` and expose them on ``app.state``."""

    app.state.volume_accountant = VolumeAccountant(
        session_factory,
        threshold=ThresholdNotifier(settings.volume_warning_threshold_minutes),
        quantum_minutes=settings.rounding_quantum_minutes,
    )
    app.state.billing_service = BillingService(session_factory)
    app.state.service_level_service = ServiceLevelService(session_factory)
    app.state.renewal_service = RenewalService(session_factory)
    app.state.ticket_service = TicketService(session_factory)
    app.state.event_dispatcher = EventDispatcher(
        store=SQLNotificationStore(session_factory),
        email_sender=LoggingEmailSender(),
        recipients=RecipientDirectory(session_factory),
        dashboard_url=settings.dashboard_url,
        support_email=settings.support_email,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    app.state.logger = logger
    app.state.tracer_provider = tracer_provider
    db_engine = None
    app.state.db_engine = None
    try:
        db_engine, session_factory = create_engine_and_factory(settings.postgres_dsn)
        if settings.create_schema_on_startup:
            await ensure_schema(db_engine)
        install_services(app, settings, session_factory)
        app.state.db_engine = db_engine
    except Exception:
        logger.exception("Service initialisation failed; API runs without a database")
        if db_engine is not None:
            await db_engine.dispose()
            db_engine = None
    try:
        yield
    finally:
        if db_engine is not None:
            await db_engine.dispose()
        shutdown_tracer(tracer_provider)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logging.getLogger(__name__).info("Rejected request to %s: %s", request.url.path, exc.errors())
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": {
                "kind": "Validation",
                "message": "Request validation failed",
                "errors": jsonable_encoder(exc.errors()),
            }
        },
    )


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.add_middleware(RBACMiddleware)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.include_router(ping.router)
    app.include_router(tickets.router)
    app.include_router(work_entries.router)
    app.include_router(billing.router)
    app.include_router(service_levels.router)
    return app


app = create_app()
