"""
SpaceOps Escalation - Cron Entrypoints

Each job is exposed as GET /api/cron/<job>, guarded by a shared secret sent
as `Authorization: Bearer <CRON_SECRET>`. Meant to be called by an external
scheduler.
"""
import hmac
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..config import get_config
from ..notifications.dispatcher import get_dispatcher
from ..storage import get_storage
from ..telemetry import capture_exception
from .engine import check_overdue_tasks, check_sla_warnings, trigger_scheduled_inspections
from .retention import cleanup_expired

logger = logging.getLogger(__name__)

CRON_JOBS = {
    "overdue-check": lambda: check_overdue_tasks(get_storage(), get_dispatcher()),
    "sla-warning": lambda: check_sla_warnings(get_storage(), get_dispatcher()),
    "trigger-scheduled-inspections": lambda: trigger_scheduled_inspections(get_storage(), get_dispatcher()),
    "cleanup-expired": lambda: cleanup_expired(get_storage()),
}


def _authorize(request: Request):
    """Return an error response, or None when the bearer token matches."""
    secret = get_config("cron_secret")
    if not secret:
        logger.error("[Escalation] CRON_SECRET is not configured; refusing cron invocation")
        return JSONResponse({"ok": False, "error": "Cron secret not configured"}, status_code=500)

    header = request.headers.get("authorization", "")
    if not hmac.compare_digest(header.encode(), f"Bearer {secret}".encode()):
        return JSONResponse({"ok": False, "error": "Unauthorized"}, status_code=401)
    return None


def _run(job_name: str, request: Request):
    denied = _authorize(request)
    if denied is not None:
        return denied
    try:
        summary = CRON_JOBS[job_name]()
    except Exception as e:
        logger.error(f"[Escalation] {job_name} failed: {e}", exc_info=True)
        capture_exception(e, {"job": job_name})
        return JSONResponse({"ok": False, "error": f"{job_name} failed"}, status_code=500)
    return {"ok": True, "job": job_name, **summary}


def register_cron_routes(app: FastAPI):
    """Register cron-triggered escalation endpoints.

    Handlers are plain functions so FastAPI runs the blocking jobs in its
    threadpool.
    """

    @app.get("/api/cron/overdue-check")
    def cron_overdue_check(request: Request):
        return _run("overdue-check", request)

    @app.get("/api/cron/sla-warning")
    def cron_sla_warning(request: Request):
        return _run("sla-warning", request)

    @app.get("/api/cron/trigger-scheduled-inspections")
    def cron_trigger_scheduled_inspections(request: Request):
        return _run("trigger-scheduled-inspections", request)

    @app.get("/api/cron/cleanup-expired")
    def cron_cleanup_expired(request: Request):
        return _run("cleanup-expired", request)
