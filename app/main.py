import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI

from app.core.config import settings
from app.db import check_database_health
from app.services.migration_service import run_migrations
from app.services.provider import ServiceProvider

from .api.routes import conversations, reservations, users

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting application...")
    try:
        # Migrations can be skipped where the schema is managed externally
        if os.getenv("SKIP_MIGRATIONS") != "true":
            await run_migrations()
        await check_database_health()
        logger.info("Database health check passed - application ready")
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        logger.error("Application startup aborted due to database issues")
        raise

    yield

    logger.info("Application shutting down...")
    ServiceProvider.clear()


app = FastAPI(title="Reservation Conversations", lifespan=lifespan)

app.include_router(conversations.conversations_router_instance)
app.include_router(users.users_api_router)
app.include_router(reservations.reservations_api_router)


@app.get("/health")
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}
