# app/routes/health.py
"""
Health check endpoints: liveness plus a readiness check covering the Redis
snapshot mirror and source adapter configuration.
"""

import time

from fastapi import APIRouter

from app.config import settings
from app.features.priority.domain.models import Source
from app.infrastructure.observability.logging import log_health_check
from app.services.redis_client import fast_redis

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "priority-dashboard"}


@router.get("/readyz")
async def readyz():
    """
    Readiness check.

    Redis is only checked when REDIS_URL is set; without it the cache runs
    memory-only, which is a valid deployment. Every source needs a bridge URL
    or a fixture path, otherwise its items can never appear on the dashboard.
    """
    checks = {}
    overall_ok = True

    # 1) Redis snapshot mirror
    if settings.redis_enabled():
        t0 = time.time()
        try:
            redis_ok = await fast_redis.ping()
            latency_ms = round((time.time() - t0) * 1000, 1)
            checks["redis"] = {"ok": bool(redis_ok), "latency_ms": latency_ms}
            log_health_check("redis", bool(redis_ok), latency_ms)
            overall_ok = overall_ok and bool(redis_ok)
        except Exception as e:
            latency_ms = round((time.time() - t0) * 1000, 1)
            checks["redis"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
            log_health_check("redis", False, latency_ms, error=str(e))
            overall_ok = False
    else:
        checks["redis"] = {"ok": True, "mode": "memory_only"}

    # 2) Source configuration
    urls = settings.source_urls()
    fixtures = settings.source_fixtures()
    sources = {}
    config_issues = []
    for source in Source:
        if urls.get(source.value):
            mode = "bridge"
        elif fixtures.get(source.value):
            mode = "fixture"
        else:
            mode = "unconfigured"
            config_issues.append(f"{source.label} source not configured")
        sources[source.value] = mode

    config_ok = not config_issues
    checks["sources"] = {
        "ok": config_ok,
        "modes": sources,
        "issues": config_issues if config_issues else None,
        "environment": settings.environment,
    }
    overall_ok = overall_ok and config_ok

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
