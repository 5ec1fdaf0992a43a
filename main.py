# ============================================================================
# SpaceOps - Escalation Backend
# ============================================================================
# Facility inspection scheduling, derived space status, and the
# deduplicated overdue / SLA / schedule escalation pipeline.
#
# Feature modules register their own routes:
#   app.facility       GET  /api/buildings/{id}/space-status
#   app.schedules      /api/schedules (admin CRUD + toggle)
#   app.notifications  /api/notifications (inbox, prefs, task-assigned)
#   app.escalation     GET  /api/cron/* (bearer-guarded job entrypoints)
# ============================================================================

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.config import get_config
from app.escalation import init_escalation_scheduler, register_cron_routes, shutdown_escalation_scheduler
from app.facility import register_facility_routes
from app.facility.queries import get_user
from app.notifications import register_notification_routes
from app.schedules import register_schedule_routes
from app.storage import get_storage, init_database
from app.telemetry import init_telemetry

logger = logging.getLogger(__name__)

# ================================================================
# FASTAPI APP
# ================================================================

spaceops_app = FastAPI(title="SpaceOps Escalation")
app = spaceops_app
spaceops_app.add_middleware(SessionMiddleware, secret_key=get_config("session_secret"))
spaceops_app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.on_event("startup")
async def _spaceops_startup():
    init_database()
    init_telemetry()
    init_escalation_scheduler()
    logger.info(f"[SpaceOps] Backend started (db={get_config('db_path')})")


@app.on_event("shutdown")
async def _spaceops_shutdown():
    shutdown_escalation_scheduler()


# ================================================================
# SESSION
# ================================================================

@app.post("/api/session/login")
async def session_login(request: Request):
    data = await request.json()
    user_id = (data.get("user") or "").strip()
    profile = get_user(get_storage(), user_id)
    if not profile:
        return JSONResponse({"ok": False, "error": "Unknown user"}, status_code=401)
    request.session["user"] = profile.id
    request.session["role"] = profile.role
    return {"ok": True, "user": profile.id, "role": profile.role}


@app.get("/api/session/status")
async def session_status(request: Request):
    user = request.session.get("user")
    return {"logged_in": bool(user), "user": user, "role": request.session.get("role")}


@app.post("/api/session/logout")
async def session_logout(request: Request):
    request.session.clear()
    return {"ok": True}


# ================================================================
# FEATURE MODULES
# ================================================================

register_facility_routes(app)
register_schedule_routes(app)
register_notification_routes(app)
register_cron_routes(app)
