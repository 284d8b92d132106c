"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sniperzone.api import availability, bookings, cron, health, recurring, schedules, semi_private, sunday
from sniperzone.core.database import init_db
from sniperzone.core.exceptions import CompensationFailed, SchedulingError
from sniperzone.core.settings import settings

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting SniperZone scheduling API...")

    await init_db()
    logger.info("Database initialized")

    # Periodic jobs run in the separate cron worker process
    logger.info("Web server mode - scheduler runs in separate worker process")

    yield

    logger.info("Application stopped")


# Create FastAPI app
app = FastAPI(
    title="SniperZone Scheduling API",
    description="Booking core for SniperZone hockey training",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    """Translate service errors into JSON bodies."""
    if isinstance(exc, CompensationFailed):
        logger.critical(f"🚨 {request.method} {request.url.path}: {exc.message} {exc.details}")
    elif exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include API routers
app.include_router(health.router)
app.include_router(schedules.router)
app.include_router(semi_private.router)
app.include_router(availability.router)
app.include_router(bookings.router)
app.include_router(sunday.router)
app.include_router(recurring.router)
app.include_router(cron.router)


if __name__ == "__main__":
    import os

    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "sniperzone.main:app",
        host="0.0.0.0",
        port=port,
        reload=settings.env == "dev",
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
