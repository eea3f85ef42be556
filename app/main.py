"""
FastAPI application hosting the birthday wish service.

The lifespan starts the service (initial run plus hourly recheck) and
stops its timer on shutdown.
"""

import asyncio
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.config import settings
from app.features.birthday_wishes.api.router import router as birthday_router
from app.features.birthday_wishes.services.controller import BirthdayWishService
from app.infrastructure.observability.logging import get_logger, setup_logging
from app.routes import health

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the birthday service on boot and stop it on shutdown."""

    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    service = BirthdayWishService.from_settings(settings)
    app.state.birthday_service = service

    # Initial run happens in the background so the HTTP server comes up
    # even when the store is slow to answer
    startup_task = asyncio.create_task(service.start(), name="birthday-service-start")

    yield

    logger.info("Application shutting down")

    if not startup_task.done():
        await asyncio.wait({startup_task})
    if not startup_task.cancelled() and startup_task.exception() is not None:
        logger.error("Birthday service failed to start", error=str(startup_task.exception()))

    try:
        await service.stop()
    except Exception as e:
        logger.error("Error stopping birthday service", error=str(e))

    app.state.birthday_service = None
    logger.info("All services closed successfully")


app = FastAPI(
    title="Birthday Wish Service",
    description="Daily birthday SMS run with email report",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(health.router)
app.include_router(birthday_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    logger.info(
        "HTTP request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.SERVICE_HOST, port=settings.SERVICE_PORT)
