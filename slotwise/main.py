"""
Application entry point: FastAPI app with database pool and Redis lifecycle.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from slotwise.config import settings
from slotwise.db.pool import db_pool
from slotwise.infrastructure.observability.logging import get_logger, log_request, setup_logging
from slotwise.routes import calendar, calendar_oauth, health, plan
from slotwise.services.calendar.google_client import google_calendar_client
from slotwise.services.infrastructure.redis_client import redis_client

# Setup logging before creating the app
setup_logging(log_level="DEBUG" if settings.debug else "INFO")
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    await db_pool.initialize()

    # Redis only backs the scheduling lock, which degrades to unlocked
    try:
        await redis_client.initialize()
    except RuntimeError as e:
        logger.warning("Redis unavailable at startup, scheduling lock degraded", error=str(e))

    logger.info("All services initialized")

    yield

    logger.info("Application shutting down")

    await google_calendar_client.close()
    await redis_client.close()
    await db_pool.close()

    logger.info("All services closed")


app = FastAPI(
    title="Slotwise",
    description="Calendar-aware scheduling engine",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(calendar_oauth.router)
app.include_router(calendar.router)
app.include_router(plan.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    log_request(
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round((time.time() - start_time) * 1000, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
