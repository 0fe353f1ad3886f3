"""
Application lifespan handler.
Manages startup and shutdown events for the FastAPI application.
"""

import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI

from shared.infrastructure.db import engine, SessionLocal
from shared.infrastructure.redis import close_redis_pool
from shared.config.settings import settings
from shared.config.logging import setup_logging, api_logger as logger
from payments_api.models import Base
from payments_api.core.dependencies import get_gateway, get_order_mutex
from payments_api.services.payments.exceptions import ConfigurationError
from payments_api.services.payments.sweeper import start_notification_sweeper


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    # Initialize logging
    setup_logging()

    # Validate credentials before startup
    secret_errors = settings.validate_production_secrets()
    if secret_errors:
        for error in secret_errors:
            logger.error("Configuration error: %s", error)
        if settings.environment == "production":
            raise ConfigurationError(
                f"Production configuration errors: {'; '.join(secret_errors)}. "
                "Server will not start without gateway credentials."
            )
        else:
            logger.warning(
                "Running with incomplete configuration (acceptable for development only)"
            )

    # Startup
    logger.info(
        "Starting payments API",
        port=settings.rest_api_port,
        env=settings.environment,
        mutex_backend=settings.order_mutex_backend,
    )

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")

    # Start the unapplied notification sweeper (non-blocking)
    sweeper_task = None
    if settings.notification_sweep_enabled:
        sweeper_task = asyncio.create_task(
            start_notification_sweeper(SessionLocal, get_order_mutex())
        )
        logger.info("Notification sweeper started")

    yield

    # Shutdown
    logger.info("Shutting down payments API")

    if sweeper_task is not None:
        sweeper_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper_task
        logger.info("Notification sweeper stopped")

    if get_gateway.cache_info().currsize:
        get_gateway().close()
        logger.info("Gateway HTTP client closed")

    close_redis_pool()
