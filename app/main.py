from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import asyncio
import logging

from app.config import settings
from app.routers import billing, health
from app.core.database import init_db, close_db
from app.core.structured_logging import APP_VERSION, setup_logging
from app.core.errors import BillingError
from app.core.errors.registry import error_registry
from app.core.errors.middleware import billing_error_handler, unregistered_error_body, validation_error_handler
from app.core.log_middleware import CorrelationMiddleware
from app.services.asaas_client import asaas_client
from app.services.billing_sync_job import billing_sync_loop

# Initialize structured logging before any logger calls
setup_logging(log_dir=settings.log_directory, log_level=logging.DEBUG if settings.debug else logging.INFO)

logger = logging.getLogger(__name__)

# API metadata
API_TITLE = "Billing Sync API"
API_VERSION = APP_VERSION

API_DESCRIPTION = """
## Billing Sync

Creates Asaas subscriptions for users and keeps local billing records in
step with Asaas payment status and payment links.

- `GET /api/billing?userId=...&sync=true` — billing history, optionally re-synced
- `POST /api/billing` — create a subscription, or reuse a pending one
"""

TAGS_METADATA = [
    {
        "name": "health",
        "description": "Health check endpoint for monitoring. No provider calls.",
    },
    {
        "name": "billing",
        "description": "Asaas subscription creation and billing status reconciliation.",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load the error registry, migrate, start the optional sync loop; undo on shutdown."""
    logger.info("Starting %s v%s...", API_TITLE, API_VERSION)

    error_registry.load()

    init_db()  # Alembic upgrade head
    logger.info("Database initialized")

    sync_task = None
    if settings.sync_interval_s > 0:
        sync_task = asyncio.create_task(billing_sync_loop(settings.sync_interval_s))
        logger.info("Periodic billing sync every %ds", settings.sync_interval_s)

    yield

    logger.info("Shutting down %s...", API_TITLE)

    if sync_task is not None:
        sync_task.cancel()
        try:
            await sync_task
        except asyncio.CancelledError:
            logger.info("Billing sync loop cancelled")

    await asaas_client.aclose()
    close_db()


def create_app() -> FastAPI:
    """Build the app: CORS, correlation ids, error envelope handlers, routers under /api."""

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=API_VERSION,
        openapi_tags=TAGS_METADATA,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # request_id + correlation_id in every log line
    app.add_middleware(CorrelationMiddleware)

    app.add_exception_handler(BillingError, billing_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # anything else still answers with the error envelope
    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
        return JSONResponse(status_code=500, content=unregistered_error_body("BIL-INTERNAL"))

    app.include_router(health.router, prefix="/api", tags=["health"])
    app.include_router(billing.router, prefix="/api", tags=["billing"])

    return app


app = create_app()
