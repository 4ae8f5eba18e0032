# app/main.py
"""
Priority dashboard backend: FastAPI app with Redis mirror and source adapter
lifecycle management.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.config import settings
from app.features.priority import get_dashboard_service, priority_router
from app.infrastructure.observability.logging import get_logger, log_request, setup_logging
from app.middleware import CORSMiddleware, RequestContextMiddleware
from app.routes import health
from app.services.redis_client import fast_redis

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL, json_logs=settings.LOG_JSON)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""

    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    startup_tasks = []

    # The Redis mirror is optional: without it the cache runs memory-only
    if settings.redis_enabled():
        try:
            logger.info("Initializing Redis connection")
            await fast_redis.initialize()
            startup_tasks.append("redis")
        except RuntimeError as e:
            logger.error("Redis unavailable, snapshot mirror degraded", error=str(e))

    service = get_dashboard_service()
    startup_tasks.append("dashboard_service")
    logger.info("Services initialized", services=startup_tasks)

    yield

    logger.info("Application shutting down")

    shutdown_errors = []

    try:
        await service.close()
    except Exception as e:
        logger.error("Error closing dashboard service", error=str(e))
        shutdown_errors.append(f"DashboardService: {e}")

    if "redis" in startup_tasks:
        try:
            logger.info("Closing Redis connection")
            await fast_redis.close()
        except Exception as e:
            logger.error("Error closing Redis", error=str(e))
            shutdown_errors.append(f"Redis: {e}")

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="Priority Dashboard",
    description="Aggregates JIRA, Outlook and Confluence work into a ranked priority view",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(CORSMiddleware, allowed_origins=settings.CORS_ALLOWED_ORIGINS)
app.add_middleware(RequestContextMiddleware)

# Include routers
app.include_router(health.router)
app.include_router(priority_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    log_request(
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
        request_id=getattr(request.state, "request_id", None),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
