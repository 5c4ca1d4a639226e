"""
Driver onboarding service - webhook ingestion and operator API.
Main FastAPI application entry point.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from src.config import get_settings
from src.api.router import api_router
from src.database import dispose_engine, get_session_factory
from src.integrations import build_provider_handlers
from src.services.driver_store import DriverStore
from src.services.webhook_queue import WebhookEventStore
from src.utils.heartbeat import close_redis
from src.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)
from src.workers.webhook_dispatcher import WebhookDispatcher

logger = logging.getLogger("driverdesk")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


def build_services(session_factory, settings) -> tuple[DriverStore, WebhookEventStore, WebhookDispatcher]:
    """Wire the stores, provider handlers and dispatcher around one session factory."""
    driver_store = DriverStore(session_factory)
    webhook_store = WebhookEventStore.from_settings(session_factory, settings)
    dispatcher = WebhookDispatcher(webhook_store, build_provider_handlers(driver_store))
    return driver_store, webhook_store, dispatcher


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    logger.info("Driver onboarding service starting up (env=%s)", settings.app_env)

    # Initialize Sentry if configured
    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.app_env,
            )
            logger.info("Sentry initialized")
        except Exception as e:
            logger.warning("Sentry initialization failed: %s", str(e))

    driver_store, webhook_store, dispatcher = build_services(get_session_factory(), settings)
    app.state.driver_store = driver_store
    app.state.webhook_store = webhook_store
    app.state.dispatcher = dispatcher
    logger.info("Webhook providers registered: %s", ", ".join(sorted(dispatcher.handlers)))

    from src.workers.webhook_poller import run_webhook_poller
    worker_tasks: list[asyncio.Task] = [asyncio.create_task(run_webhook_poller(dispatcher))]
    logger.info("Webhook poller started")

    yield

    # Graceful shutdown - stop polling, let in-flight drains finish
    logger.info("Shutting down - stopping %d workers...", len(worker_tasks))
    for task in worker_tasks:
        task.cancel()
    await asyncio.gather(*worker_tasks, return_exceptions=True)
    await dispatcher.shutdown(timeout=10.0)
    await close_redis()
    await dispose_engine()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    # Configure structured JSON logging with correlation IDs
    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="Driver Onboarding",
        description="Driver onboarding webhook ingestion and operator API",
        version="1.0.0",
        lifespan=lifespan,
    )

    # CORS - allow admin UI origins
    application.add_middleware(
        CORSMiddleware,
        allow_origins=[*settings.cors_origins, settings.app_base_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=[
            "Authorization", "Content-Type", "X-Correlation-ID",
            "Accept", "Origin", "X-Requested-With",
        ],
    )

    # Correlation ID middleware (must be added AFTER CORS so it runs on every request)
    application.add_middleware(CorrelationIdMiddleware)

    application.include_router(api_router)

    return application


app = create_app()
