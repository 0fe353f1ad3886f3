"""
Payments API main application.
Entry point for the FastAPI server.
"""

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from sqlalchemy import text

from shared.config.settings import settings
from shared.infrastructure.correlation import CorrelationIdMiddleware
from shared.infrastructure.db import SessionLocal
from payments_api.core.lifespan import lifespan
from payments_api.routers import checkout_router, notifications_router, payments_router
from payments_api.services.payments.circuit_breaker import get_all_breaker_stats
from payments_api.services.payments.notification_store import NotificationStore


# Create FastAPI application
app = FastAPI(
    title="Payments API",
    description="Payment provider notification ingestion and payment state management",
    version="0.1.0",
    lifespan=lifespan,
)

# Request correlation IDs for log tracing
app.add_middleware(CorrelationIdMiddleware)


# =============================================================================
# Health Check
# =============================================================================


@app.get("/api/health")
def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "service": "payments-api",
        "environment": settings.environment,
    }


@app.get("/api/health/detailed")
def detailed_health_check():
    """
    Detailed health check that verifies connectivity to dependencies.
    Returns status of the database, Redis (when it backs the order mutex),
    the gateway circuit breaker and the unapplied notification backlog.
    """
    checks = {
        "service": "payments-api",
        "environment": settings.environment,
        "dependencies": {},
    }
    all_healthy = True

    # Check database
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
            unapplied = NotificationStore(db).count_unapplied()
        checks["dependencies"]["database"] = {"status": "healthy"}
        checks["notifications"] = {"unapplied": unapplied}
    except Exception as e:
        checks["dependencies"]["database"] = {"status": "unhealthy", "error": str(e)}
        all_healthy = False

    # Check Redis
    if settings.order_mutex_backend == "redis":
        from shared.infrastructure.redis import get_redis_sync_client

        try:
            get_redis_sync_client().ping()
            checks["dependencies"]["redis"] = {"status": "healthy"}
        except Exception as e:
            checks["dependencies"]["redis"] = {"status": "unhealthy", "error": str(e)}
            all_healthy = False

    checks["circuit_breakers"] = get_all_breaker_stats()

    checks["status"] = "healthy" if all_healthy else "degraded"

    # Return 503 if any dependency is down
    if not all_healthy:
        return JSONResponse(content=checks, status_code=503)

    return checks


# =============================================================================
# Include Routers
# =============================================================================

app.include_router(notifications_router)
app.include_router(checkout_router)
app.include_router(payments_router)


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "payments_api.main:app",
        host="0.0.0.0",
        port=settings.rest_api_port,
        reload=True,
    )
