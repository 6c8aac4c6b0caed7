"""
Tennis League API Server

FastAPI server exposing the match lifecycle and the division standings.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
import uvicorn
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore

from tennis_league.api.routes import router, limiter as routes_limiter
from tennis_league.database import db
from tennis_league.services import redis_service
from tennis_league.services.directory_service import RegistryCache
from tennis_league.services.match_events import MatchEventFeed

# Set up logging
# Allow log level to be configured via environment variable (default: INFO)
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    logger.info("Starting up Tennis League API...")

    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    yield  # App is running

    logger.info("Shutting down Tennis League API...")
    await db.engine.dispose()

    try:
        await redis_service.close_redis_connection()
    except Exception as e:
        logger.error(f"Error closing Redis connection: {e}", exc_info=True)


app = FastAPI(
    title="Tennis League API",
    description="Match lifecycle and standings for a round-robin tennis league",
    version="1.0.0",
    lifespan=lifespan,
)

# Process-wide change feed and directory cache
app.state.match_feed = MatchEventFeed()
app.state.registry_cache = RegistryCache()

# Setup rate limiter
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware; origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(router)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
