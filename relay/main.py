"""
Relay - call and lead ingestion service for the Relay CRM.
Main FastAPI application entry point.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from relay.config import get_settings
from relay.api.router import api_router
from relay.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger("relay")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    logger.info("Relay starting up (env=%s)", settings.app_env)

    if not settings.cinc_webhook_secret:
        logger.warning("CINC_WEBHOOK_SECRET not set - /api/v1/webhook/cinc will answer 500")
    if not settings.retell_api_key:
        logger.warning("RETELL_API_KEY not set - proxy disabled and call_ended will use webhook data only")

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

    worker_tasks: list[asyncio.Task] = []

    if settings.stale_call_sweeper_enabled:
        from relay.workers.stale_call_sweeper import run_stale_call_sweeper
        worker_tasks.append(asyncio.create_task(run_stale_call_sweeper()))
        logger.info("Stale call sweeper started")
    else:
        logger.info("Stale call sweeper disabled (STALE_CALL_SWEEPER_ENABLED=false)")

    yield

    # Graceful shutdown
    logger.info("Relay shutting down - stopping %d workers...", len(worker_tasks))
    for task in worker_tasks:
        task.cancel()
    if worker_tasks:
        await asyncio.gather(*worker_tasks, return_exceptions=True)

    from relay.utils.cache import close_redis
    from relay.database import dispose_engine
    await close_redis()
    await dispose_engine()
    logger.info("Relay shutdown complete")


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    # Configure structured JSON logging with correlation IDs
    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="Relay",
        description="Call and lead ingestion for the Relay CRM",
        version="1.0.0",
        lifespan=lifespan,
    )

    origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
    application.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["http://localhost:5173", settings.app_base_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=[
            "Authorization", "Content-Type", "X-Correlation-ID",
            "X-CINC-Signature", "Accept", "Origin", "X-Requested-With",
        ],
    )

    # Correlation ID middleware (must be added AFTER CORS so it runs on every request)
    application.add_middleware(CorrelationIdMiddleware)

    application.include_router(api_router)

    return application


app = create_app()
