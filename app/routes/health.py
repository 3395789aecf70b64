# app/routes/health.py
"""
Health check endpoints.
"""

import time

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.config import Settings
from app.routes.dependencies import get_app_settings

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "slot-scheduler"}


@router.get("/readyz")
async def readyz(request: Request, app_settings: Settings = Depends(get_app_settings)):
    """
    Readiness check: configuration plus calendar provider reachability.
    The reservation table is in-process, so it is reported but never blocks readiness.
    """
    checks = {}
    overall_ok = True

    # 1) Configuration
    config_ok = bool(app_settings.GOOGLE_CALENDAR_ID) and app_settings.has_calendar_credentials()
    checks["config"] = {
        "ok": config_ok,
        "calendar_id": app_settings.GOOGLE_CALENDAR_ID,
        "calendar_credentials": app_settings.has_calendar_credentials(),
        "notifications_configured": bool(app_settings.NOTIFICATION_WEBHOOK_URL),
        "call_service_configured": bool(
            app_settings.RETELL_API_KEY and app_settings.RETELL_AGENT_ID
        ),
    }
    overall_ok = overall_ok and config_ok

    # 2) Calendar provider
    t0 = time.time()
    try:
        provider_health = await request.app.state.provider.health_check()
        provider_ok = bool(provider_health.get("healthy", False))
        checks["calendar"] = {
            "ok": provider_ok,
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        if not provider_ok:
            checks["calendar"]["error"] = provider_health.get("error", "Calendar unhealthy")
        overall_ok = overall_ok and provider_ok
    except Exception as e:
        checks["calendar"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
        overall_ok = False

    # 3) In-memory state
    checks["reservations"] = {"ok": True, "live": len(request.app.state.store)}
    checks["calls"] = {"ok": True, "tracked": len(request.app.state.tracker.registry)}

    return JSONResponse(
        status_code=200 if overall_ok else 503,
        content={"status": "ready" if overall_ok else "not_ready", "checks": checks},
    )
