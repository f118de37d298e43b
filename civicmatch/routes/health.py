"""
Health check endpoints: liveness, readiness (database pool + configuration)
and the matching job's last-run status.
"""

import time

from fastapi import APIRouter

from civicmatch.config import settings
from civicmatch.db.pool import db_health_check
from civicmatch.features.weekly_matching.jobs.matching_job import weekly_matching_job_health
from civicmatch.infrastructure.observability.logging import log_health_check

router = APIRouter()


def _elapsed_ms(t0: float) -> float:
    return round((time.time() - t0) * 1000, 1)


async def _database_check() -> dict:
    t0 = time.time()
    try:
        db_health = await db_health_check()
    except Exception as e:
        check = {"ok": False, "error": f"{type(e).__name__}: {e}", "latency_ms": _elapsed_ms(t0)}
        log_health_check("database", False, check["latency_ms"], check["error"])
        return check

    is_healthy = db_health.get("healthy", False)
    check = {"ok": is_healthy, "latency_ms": _elapsed_ms(t0)}

    pool_stats = db_health.get("pool_stats")
    if pool_stats:
        check["pool_size"] = pool_stats.get("pool_size", 0)
        check["pool_available"] = pool_stats.get("pool_available", 0)
        check["connection_time_ms"] = db_health.get("connection_time_ms", 0)

    if not is_healthy:
        check["error"] = db_health.get("error", "Database unhealthy")
        if "error_type" in db_health:
            check["error_type"] = db_health["error_type"]

    log_health_check("database", is_healthy, check["latency_ms"], check.get("error"))
    return check


def _configuration_check() -> dict:
    issues = settings.configuration_issues()
    return {
        "ok": not issues,
        "issues": issues or None,
        "environment": settings.environment,
        "meetings_enabled": settings.MATCHING_CREATE_MEETINGS
        and settings.google_credentials_configured(),
    }


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "civicmatch"}


@router.get("/readyz")
async def readyz():
    """Readiness: the database pool answers and a matching cycle could start."""
    checks = {"database": await _database_check(), "configuration": _configuration_check()}
    overall_ok = all(check["ok"] for check in checks.values())
    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}


@router.get("/health/database")
async def database_health():
    """Detailed database pool health information."""
    return await db_health_check()


@router.get("/health/matching-job")
async def matching_job_health():
    """Status of the in-process matching job."""
    return weekly_matching_job_health()
