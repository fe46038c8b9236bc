"""
Parcel hub API with database pool and upload job lifecycle management.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from parcelhub.config import settings
from parcelhub.db.pool import db_pool
from parcelhub.features.reconciliation.api import dependencies as reconciliation_deps
from parcelhub.features.reconciliation.api.router import router as reconciliation_router
from parcelhub.features.reconciliation.jobs.job_store import build_job_store
from parcelhub.features.trip_analysis.api.router import router as trip_analysis_router
from parcelhub.infrastructure.observability.logging import get_logger, log_request, setup_logging
from parcelhub.jobs.job_retention_job import JobRetentionSweeper
from parcelhub.middleware import RequestContextMiddleware
from parcelhub.routes import health
from parcelhub.services.redis_client import fast_redis

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


async def _close(name: str, closer, errors: list[str] | None = None) -> None:
    """Run one shutdown step; failures are logged and collected, never raised."""
    try:
        await closer()
    except Exception as e:
        logger.error("Shutdown step failed", step=name, error=str(e))
        if errors is not None:
            errors.append(f"{name}: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the parcel store, pick the job store, start the sweeper; undo in reverse."""

    logger.info("Parcel hub starting", environment=settings.environment, debug=settings.debug)

    job_store_config = settings.get_job_store_config()
    started: list[str] = []
    sweeper = None

    try:
        await db_pool.initialize()
        started.append("database_pool")

        redis_client = None
        if job_store_config["backend"] == "redis":
            await fast_redis.initialize()
            started.append("redis")
            redis_client = fast_redis

        job_store = build_job_store(job_store_config, redis_client=redis_client)
        reconciliation_deps.configure(job_store)

        sweeper = JobRetentionSweeper(job_store, job_store_config["sweep_interval_seconds"])
        sweeper.start()
        started.append("job_retention_sweeper")

    except Exception as e:
        logger.error("Startup aborted", error=str(e), started=started)
        if sweeper is not None:
            await sweeper.stop()
        if "redis" in started:
            await _close("redis", fast_redis.close)
        if "database_pool" in started:
            await _close("database_pool", db_pool.close)
        raise

    logger.info("Parcel hub ready", services=started, job_store=job_store_config["backend"])

    yield

    logger.info("Parcel hub shutting down")
    errors: list[str] = []

    await sweeper.stop()
    # Running uploads finish before their store goes away
    await _close("upload_jobs", reconciliation_deps.shutdown, errors)
    if "redis" in started:
        await _close("redis", fast_redis.close, errors)
    await _close("database_pool", db_pool.close, errors)

    if errors:
        logger.warning("Shutdown finished with errors", errors=errors)
    else:
        logger.info("Shutdown complete")


app = FastAPI(
    title="Parcel Hub",
    description="Parcel status reconciliation and courier trip analysis",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(RequestContextMiddleware)

# Include routers
app.include_router(health.router)
app.include_router(reconciliation_router)
app.include_router(trip_analysis_router)


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
