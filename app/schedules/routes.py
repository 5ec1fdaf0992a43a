"""
SpaceOps Schedules - API Routes
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..storage import get_storage
from .clock import describe_schedule
from .models import (
    ScheduleValidationError, create_schedule, get_schedule, list_schedules,
    set_schedule_enabled, update_schedule,
)


def _schedule_payload(schedule) -> dict:
    d = schedule.to_dict()
    d["description"] = describe_schedule(schedule)
    return d


def _unauthorized():
    return JSONResponse({"ok": False, "error": "Not signed in"}, status_code=401)


def _not_found():
    return JSONResponse({"ok": False, "error": "Schedule not found"}, status_code=404)


def _invalid(err: ScheduleValidationError):
    return JSONResponse({"ok": False, "error": str(err), "fields": err.errors}, status_code=400)


def _bad_body(error: str = "Expected a JSON object body"):
    return JSONResponse({"ok": False, "error": error}, status_code=400)


async def _json_body(request: Request):
    """The request body as a dict, or None when it is missing or not a JSON object."""
    try:
        data = await request.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def register_schedule_routes(app: FastAPI):
    """Register inspection schedule admin endpoints."""

    @app.get("/api/schedules")
    async def api_list_schedules(request: Request, building_id: str = None):
        if not request.session.get("user"):
            return _unauthorized()
        schedules = list_schedules(get_storage(), building_id)
        return {"ok": True, "schedules": [_schedule_payload(s) for s in schedules]}

    @app.get("/api/schedules/{schedule_id}")
    async def api_get_schedule(schedule_id: str, request: Request):
        if not request.session.get("user"):
            return _unauthorized()
        schedule = get_schedule(get_storage(), schedule_id)
        if not schedule:
            return _not_found()
        return {"ok": True, "schedule": _schedule_payload(schedule)}

    @app.post("/api/schedules")
    async def api_create_schedule(request: Request):
        user = request.session.get("user")
        if not user:
            return _unauthorized()
        data = await _json_body(request)
        if data is None:
            return _bad_body()
        try:
            schedule = create_schedule(get_storage(), data, acting_as=user)
        except ScheduleValidationError as e:
            return _invalid(e)
        return {"ok": True, "schedule": _schedule_payload(schedule)}

    @app.put("/api/schedules/{schedule_id}")
    async def api_update_schedule(schedule_id: str, request: Request):
        user = request.session.get("user")
        if not user:
            return _unauthorized()
        data = await _json_body(request)
        if data is None:
            return _bad_body()
        try:
            schedule = update_schedule(get_storage(), schedule_id, data, acting_as=user)
        except ScheduleValidationError as e:
            return _invalid(e)
        if not schedule:
            return _not_found()
        return {"ok": True, "schedule": _schedule_payload(schedule)}

    @app.post("/api/schedules/{schedule_id}/toggle")
    async def api_toggle_schedule(schedule_id: str, request: Request):
        user = request.session.get("user")
        if not user:
            return _unauthorized()
        data = await _json_body(request)
        if data is None or "enabled" not in data:
            return _bad_body("enabled is required")
        schedule = set_schedule_enabled(get_storage(), schedule_id,
                                        bool(data.get("enabled")), acting_as=user)
        if not schedule:
            return _not_found()
        return {"ok": True, "schedule": _schedule_payload(schedule)}
