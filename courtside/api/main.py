"""
Courtside Match Reservation API Server

FastAPI server exposing match slots, applications, results and ratings.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
import uvicorn
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore

from courtside.api.routes import router, limiter as routes_limiter
from courtside.database import db
from courtside.services.lock_expiry_service import get_lock_expiry_service

# Set up logging
# Allow log level to be configured via environment variable (default: INFO)
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

ENABLE_LOCK_SWEEPER = os.getenv("ENABLE_LOCK_SWEEPER", "true").lower() == "true"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    # Startup
    logger.info("Starting up Courtside API...")

    # Initialize database (create tables if they don't exist)
    # Fallback for environments where migrations have not been run
    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)
        # Don't raise - allow app to start even if initialization fails

    # Start lock expiry sweeper (optional: expiry is also applied lazily)
    if ENABLE_LOCK_SWEEPER:
        try:
            get_lock_expiry_service().start()
        except Exception as e:
            logger.error(f"Failed to start lock expiry worker: {e}", exc_info=True)

    yield  # App is running

    # Shutdown
    logger.info("Shutting down Courtside API...")

    try:
        get_lock_expiry_service().stop()
    except Exception as e:
        logger.error(f"Error stopping lock expiry worker: {e}", exc_info=True)

    await db.engine.dispose()


app = FastAPI(
    title="Courtside API",
    description="Match slot reservation, applications and ELO ratings for tennis players",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup rate limiter
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware - origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router)


@app.get("/api/health")
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Service status
    """
    return {"status": "healthy", "message": "API is running"}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
