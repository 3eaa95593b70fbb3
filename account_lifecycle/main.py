"""Account Lifecycle - FastAPI Application Entry Point.

Back-office service for deleting, scheduling deletion of, and restoring
user accounts with a full audit trail.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from account_lifecycle.config import LifecycleConfig, Settings, settings
from account_lifecycle.database import init_db, async_session
from account_lifecycle.routers import api_router, sse_router
from account_lifecycle.clients.email import EmailClient
from account_lifecycle.core.audit import AuditRecorder
from account_lifecycle.core.broadcaster import broadcaster
from account_lifecycle.services.deletion_scheduler import DeletionScheduler
from account_lifecycle.services.lifecycle_engine import LifecycleEngine
from account_lifecycle.services.notifications import NotificationDispatcher
from account_lifecycle.services.repository import AccountRepository

# Configure logging from environment
log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
logging.basicConfig(
    level=log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# httpx logs every request at INFO; only useful when debugging the email provider
if log_level != logging.DEBUG:
    logging.getLogger("httpx").setLevel(logging.WARNING)


@dataclass
class Services:
    """Everything the lifespan wires together, exposed on app.state."""

    email_client: EmailClient
    dispatcher: NotificationDispatcher
    engine: LifecycleEngine
    scheduler: DeletionScheduler


def build_services(session_factory, app_settings: Settings) -> Services:
    """Wire engine, scheduler and notifications from settings."""
    config = LifecycleConfig.from_settings(app_settings)
    audit = AuditRecorder()
    repository = AccountRepository()

    email_client = EmailClient(
        base_url=app_settings.EMAIL_API_URL,
        api_key=app_settings.EMAIL_API_KEY,
        from_email=app_settings.EMAIL_FROM,
    )
    dispatcher = NotificationDispatcher(
        email_client,
        session_factory,
        audit,
        timezone_name=app_settings.NOTIFICATION_TIMEZONE,
        contact_email=app_settings.SUPPORT_EMAIL,
        enabled=app_settings.ENABLE_EMAIL_NOTIFICATIONS,
    )
    engine = LifecycleEngine(
        session_factory,
        config,
        repository=repository,
        audit=audit,
        dispatcher=dispatcher,
        broadcaster=broadcaster,
    )
    scheduler = DeletionScheduler(
        engine,
        session_factory,
        config,
        repository=repository,
        dispatcher=dispatcher,
    )
    return Services(
        email_client=email_client,
        dispatcher=dispatcher,
        engine=engine,
        scheduler=scheduler,
    )


def attach_services(app: FastAPI, services: Services):
    app.state.email_client = services.email_client
    app.state.dispatcher = services.dispatcher
    app.state.engine = services.engine
    app.state.scheduler = services.scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Initialize database tables
    - Build lifecycle engine, scheduler and notification dispatcher
    - Start notification worker
    - Start deletion scheduler (if enabled)

    Shutdown (reverse order):
    - Stop deletion scheduler (in-flight execution finishes)
    - Drain and stop notification worker
    - Close email HTTP client
    """
    # Startup
    logger.info("Starting Account Lifecycle...")

    logger.info("Initializing database...")
    await init_db()
    logger.info("Database initialized")

    services = build_services(async_session, settings)
    attach_services(app, services)

    if not services.email_client.is_configured and settings.ENABLE_EMAIL_NOTIFICATIONS:
        logger.warning("EMAIL_API_KEY not set - notifications will fail and be logged")

    await services.dispatcher.start()

    if settings.ENABLE_DELETION_SCHEDULER:
        logger.info("Starting deletion scheduler...")
        await services.scheduler.start()
    else:
        logger.info("Deletion scheduler disabled")

    logger.info("Account Lifecycle ready")

    yield  # Application runs here

    # Shutdown
    logger.info("Shutting down Account Lifecycle...")

    await services.scheduler.stop()
    await services.dispatcher.stop()
    await services.email_client.close()
    logger.info("Email client closed")


# Create FastAPI app
app = FastAPI(
    title="Account Lifecycle",
    description="Account deletion, scheduled deletion and restoration with audit trail",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware (for dashboard access from different origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production if needed
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(api_router)
app.include_router(sse_router)


# For API info, use /api/health
