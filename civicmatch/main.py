"""
CivicMatch matching service: HTTP triggers with database pool lifecycle management.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from civicmatch.config import settings
from civicmatch.db.pool import db_pool
from civicmatch.features.weekly_matching.api.router import router as weekly_matching_router
from civicmatch.features.weekly_matching.services.factory import close_matching_services
from civicmatch.infrastructure.observability.logging import get_logger, setup_logging
from civicmatch.routes import health

# Setup logging before creating the app
setup_logging(log_level="DEBUG" if settings.debug else "INFO")
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    issues = settings.configuration_issues()
    if issues:
        logger.warning("Configuration incomplete, matching cycles will fail", issues=issues)

    if settings.SUPABASE_DB_URL:
        try:
            logger.info("Initializing database pool")
            await db_pool.initialize()
        except Exception as e:
            logger.error("Failed to initialize database pool", error=str(e))
            raise

    yield

    logger.info("Application shutting down")
    try:
        await close_matching_services()
        await db_pool.close()
    except Exception as e:
        logger.error("Error closing database pool", error=str(e))
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="CivicMatch Weekly Matching",
    description="Pairs changemakers every cycle, books a Meet call and emails both sides",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(weekly_matching_router)


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

    uvicorn.run(app, host="0.0.0.0", port=8000)
