import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.millstock.api import build_api_router
from app.millstock.core.config import settings
from app.millstock.core.errors import setup_exception_handlers
from app.millstock.core.logging import configure_logging, log_event
from app.millstock.db.session import engine
from app.millstock.middleware.actor import ActorContextMiddleware
from app.millstock.middleware.observability import ObservabilityMiddleware
from app.millstock.middleware.trace import TraceIdMiddleware

logger = logging.getLogger("millstock")


@asynccontextmanager
async def lifespan(app: FastAPI):
    log_event(
        logger,
        "service_started",
        app=settings.APP_NAME,
        database=engine.url.get_backend_name(),
        metrics_enabled=settings.METRICS_ENABLED,
    )
    yield
    log_event(logger, "service_stopped", app=settings.APP_NAME)


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title=settings.APP_NAME,
        description="Stock ledger and inter-warehouse transfer workflow for the mill's warehouses.",
        lifespan=lifespan,
    )
    # Outermost last: observability wraps trace, trace wraps actor.
    app.add_middleware(ActorContextMiddleware)
    app.add_middleware(TraceIdMiddleware)
    app.add_middleware(ObservabilityMiddleware)
    setup_exception_handlers(app)
    app.include_router(build_api_router())
    return app


app = create_app()
