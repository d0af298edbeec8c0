"""
NightWarm Backend Application

FastAPI application exposing the cron trigger for the sleep-cycle controller.
"""

import os
import sys
from contextlib import asynccontextmanager

import log_config  # noqa: F401
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from loguru import logger

# Add core to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Import API router
from api import controller, settings, store
from api import router as api_router

from core.nightwarm.cycle_service import CycleService


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan manager for startup/shutdown."""
    # Startup
    logger.info("NightWarm starting")
    await store.initialize()

    cycle_service = None
    if settings.poll_interval_minutes > 0:
        cycle_service = CycleService(controller, interval_minutes=settings.poll_interval_minutes)
        await cycle_service.start()
    else:
        logger.info("No poll interval configured - waiting for the cron trigger")

    yield

    # Shutdown
    logger.info("NightWarm shutting down")
    if cycle_service:
        await cycle_service.stop()


# Create FastAPI application
app = FastAPI(
    title="NightWarm API",
    description="Sleep-cycle heating controller for smart beds",
    version="0.1.0",
    lifespan=lifespan,
)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Handle all unhandled exceptions gracefully."""
    import traceback

    tb_str = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

    logger.error(f"Unhandled exception: {exc}")
    logger.error(f"Request path: {request.url.path}")
    logger.error(f"Stack trace:\n{tb_str}")

    return JSONResponse(
        status_code=500,
        content={
            "detail": str(exc),
            "type": type(exc).__name__,
            "message": "Internal server error",
        },
    )


# Include API router
app.include_router(api_router)


# For development
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "8080")))
