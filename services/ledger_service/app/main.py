import asyncio
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, HTTPException
from loguru import logger

from shared.errors import http_exception_handler, unhandled_exception_handler
from shared.request_context import RequestIDMiddleware
from shared.startup import wait_for_db

from .alembic_helper import run_alembic_migrations
from .dependencies import get_session_factory
from .errors import LedgerError, ledger_exception_handler
from .routes import register_routes
from .service import LedgerService
from .settings import ledger_settings
from .startup import setup_instrumentation, setup_logging


async def _relay_outbox_forever(service: LedgerService, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await service.relay_outbox()
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"Outbox relay pass failed: {exc}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = ledger_settings()
    setup_logging()
    # Run DB migrations on startup (best-effort)
    try:
        await wait_for_db(settings.async_db_url)
        await run_alembic_migrations(settings.sync_db_url)
    except Exception as exc:
        # Keep the service up even if migrations fail locally
        logger.error(f"Startup migrations skipped: {exc}")

    service = LedgerService(get_session_factory(), settings=settings)
    app.state.ledger_service = service
    relay = None
    if settings.outbox_relay_interval_seconds > 0:
        relay = asyncio.create_task(_relay_outbox_forever(service, settings.outbox_relay_interval_seconds))
    yield
    if relay is not None:
        relay.cancel()
        with suppress(asyncio.CancelledError):
            await relay


def create_app() -> FastAPI:
    app = FastAPI(title="Ledger Service", version="0.1.0", lifespan=lifespan)
    app.add_middleware(RequestIDMiddleware)
    app.add_exception_handler(LedgerError, ledger_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
    register_routes(app)
    setup_instrumentation(app)
    return app
