"""
Health check endpoints with database pool and job store monitoring.
"""

import time

from fastapi import APIRouter

from parcelhub.config import settings
from parcelhub.db.pool import db_health_check
from parcelhub.features.reconciliation.api.dependencies import get_job_store
from parcelhub.infrastructure.observability.logging import log_health_check
from parcelhub.services.redis_client import fast_redis

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "parcelhub-backend"}


@router.get("/readyz")
async def readyz():
    """
    Readiness check covering the database pool and the upload job store.
    """
    checks = {}
    overall_ok = True

    # 1) Database pool
    t0 = time.time()
    try:
        db_health = await db_health_check()
        is_healthy = db_health.get("healthy", False)
        checks["database"] = {
            "ok": is_healthy,
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        if "pool_stats" in db_health:
            checks["database"]["pool_stats"] = db_health["pool_stats"]
        if not is_healthy:
            checks["database"]["error"] = db_health.get("error", "Database unhealthy")
        log_health_check(
            "database",
            is_healthy,
            checks["database"]["latency_ms"],
            error=checks["database"].get("error"),
        )
        overall_ok = overall_ok and is_healthy
    except Exception as e:
        checks["database"] = {
            "ok": False,
            "error": f"{type(e).__name__}: {e}",
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        overall_ok = False

    # 2) Job store (Redis only when the shared backend is selected)
    job_store_config = settings.get_job_store_config()
    backend = job_store_config["backend"]
    if backend == "redis":
        t0 = time.time()
        redis_ok = await fast_redis.ping()
        checks["job_store"] = {
            "ok": redis_ok,
            "backend": backend,
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        overall_ok = overall_ok and redis_ok
    else:
        checks["job_store"] = {"ok": get_job_store() is not None, "backend": backend}

    checks["configuration"] = {
        "ok": True,
        "environment": settings.environment,
        "job_retention_seconds": job_store_config["retention_seconds"],
    }

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}


@router.get("/health/database")
async def database_health():
    """Detailed database pool health information."""
    return await db_health_check()
