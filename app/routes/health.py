# app/routes/health.py
"""
Health check endpoints with store and scheduler status.
"""

import time

from fastapi import APIRouter, Request

from app.config import settings
from app.db.connection import store_health_check
from app.infrastructure.observability.logging import log_health_check

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "birthday-wish-service"}


@router.get("/readyz")
async def readyz(request: Request):
    """
    Readiness check: store reachability, scheduler state and configuration.
    """
    checks = {}
    overall_ok = True

    # 1) Store health check
    t0 = time.time()
    try:
        store_health = await store_health_check()
        is_healthy = store_health.get("healthy", False)
        latency_ms = round((time.time() - t0) * 1000, 1)

        checks["store"] = {"ok": is_healthy, "latency_ms": latency_ms}
        if not is_healthy:
            checks["store"]["error"] = store_health.get("error", "Store unhealthy")
            if "error_type" in store_health:
                checks["store"]["error_type"] = store_health["error_type"]

        log_health_check("store", is_healthy, latency_ms, checks["store"].get("error"))
        overall_ok = overall_ok and is_healthy

    except Exception as e:
        checks["store"] = {
            "ok": False,
            "error": f"{type(e).__name__}: {e}",
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        overall_ok = False

    # 2) Scheduler check
    service = getattr(request.app.state, "birthday_service", None)
    if service is None:
        checks["scheduler"] = {"ok": False, "error": "Birthday wish service not started"}
        overall_ok = False
    else:
        status = service.get_status()
        checks["scheduler"] = {
            "ok": True,
            "recheck_running": status["recheck_running"],
            "last_execution_date": status["last_execution_date"],
        }

    # 3) Configuration checks
    config_issues = []

    if not settings.SMS_GATEWAY_URL:
        config_issues.append("SMS_GATEWAY_URL not set (simulated delivery)")

    if not (settings.SMTP_HOST and settings.SMTP_FROM and settings.report_recipients()):
        config_issues.append("Report email not fully configured (log only)")

    checks["configuration"] = {
        "ok": True,
        "issues": config_issues if config_issues else None,
        "environment": settings.environment,
    }

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}


@router.get("/health/store")
async def store_health():
    """Detailed store health information."""
    return await store_health_check()
