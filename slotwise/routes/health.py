# slotwise/routes/health.py
"""
Liveness and readiness endpoints.
"""

import time

from fastapi import APIRouter

from slotwise.config import settings
from slotwise.db.pool import db_health_check
from slotwise.services.infrastructure.encryption_service import validate_encryption_config
from slotwise.services.infrastructure.redis_client import redis_health_check

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "slotwise"}


@router.get("/readyz")
async def readyz():
    """Readiness check across the database pool, Redis and configuration."""
    checks = {}

    t0 = time.time()
    db_health = await db_health_check()
    checks["database"] = {
        "ok": db_health.get("healthy", False),
        "latency_ms": round((time.time() - t0) * 1000, 1),
    }
    if "pool_stats" in db_health:
        checks["database"].update(db_health["pool_stats"])
    if not db_health.get("healthy", False):
        checks["database"]["error"] = db_health.get("error", "Database unhealthy")

    t0 = time.time()
    redis_health = await redis_health_check()
    checks["redis"] = {
        "ok": redis_health["healthy"],
        "latency_ms": round((time.time() - t0) * 1000, 1),
        # The scheduling lock degrades to unlocked without Redis
        "required": False,
    }

    config_issues = []
    if not settings.GOOGLE_CLIENT_ID or not settings.GOOGLE_CLIENT_SECRET:
        config_issues.append("Google OAuth client not configured")
    if not settings.OAUTH_STATE_SECRET:
        config_issues.append("OAUTH_STATE_SECRET not set")
    if not validate_encryption_config():
        config_issues.append("ENCRYPTION_KEY missing or invalid")
    if not settings.GCP_SA_KEY:
        config_issues.append("GCP_SA_KEY not set (planner disabled)")

    checks["configuration"] = {
        "ok": not config_issues,
        "issues": config_issues or None,
        "environment": settings.environment,
    }

    overall_ok = checks["database"]["ok"] and checks["configuration"]["ok"]
    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
