# pyright: reportMissingTypeStubs=false
"""
Therapy Practice Scheduling Backend API

A FastAPI application exposing the session scheduling and recurrence
engine of a therapy practice.

Features:
- Session booking, rescheduling, cancellation and payment tracking
- Recurring schedule generation with whole-batch conflict validation
- Automatic renewal of exhausted patient schedules
- SQLAlchemy ORM over SQLite or PostgreSQL
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import patients, sessions
from core.config import AUTO_RENEW_SCHEDULER_ENABLED
from core.constants import CORS_ORIGINS
from core.database import create_tables
from services.auto_renewal_service import start_renewal_scheduler, stop_renewal_scheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger(__name__)
logger.info("🗓️ Scheduling API starting...")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("🚀 Starting Scheduling Backend API")

    create_tables()

    # Note: Database sessions are created fresh for each scheduler run
    if AUTO_RENEW_SCHEDULER_ENABLED:
        try:
            await start_renewal_scheduler()
            logger.info("✅ Auto-renewal scheduler started")
        except Exception as e:
            logger.exception(f"❌ Failed to start auto-renewal scheduler: {e}")

    yield

    try:
        await stop_renewal_scheduler()
    except Exception as e:
        logger.exception(f"❌ Error stopping auto-renewal scheduler: {e}")

    logger.info("🛑 Shutting down Scheduling Backend API")


# Create FastAPI application
app = FastAPI(
    title="Therapy Scheduling Backend",
    description="Session scheduling and recurrence engine for a therapy practice",
    version="1.0.0",
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc
    lifespan=lifespan,
)

# CORS middleware for frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(
    sessions.router,
    prefix="/api/sessions",
    tags=["sessions"],
    responses={
        400: {"description": "Bad request"},
        401: {"description": "Unauthorized"},
        404: {"description": "Resource not found"},
        409: {"description": "Schedule conflict"},
        500: {"description": "Internal server error"},
    },
)
app.include_router(
    patients.router,
    prefix="/api/patients",
    tags=["patients"],
    responses={
        400: {"description": "Bad request"},
        401: {"description": "Unauthorized"},
        404: {"description": "Resource not found"},
        409: {"description": "Schedule conflict"},
        500: {"description": "Internal server error"},
    },
)


@app.get(
    "/",
    summary="Root endpoint",
    description="Returns basic API information",
)
async def root() -> dict[str, str]:
    """Get API information."""
    return {
        "message": "Therapy Scheduling Backend API",
        "version": "1.0.0",
        "status": "running"
    }


@app.get(
    "/health",
    summary="Health check",
    description="Returns the health status of the API",
)
async def health_check() -> dict[str, str]:
    """Check if the API is healthy and responding."""
    return {"status": "healthy"}


# Global exception handlers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions globally."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": "internal_error"},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Handle ValueError exceptions."""
    logger.warning(f"ValueError: {exc}")
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "type": "validation_error"},
    )
