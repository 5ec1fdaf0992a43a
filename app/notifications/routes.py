"""
SpaceOps Notifications - API Routes

Inbox, preference toggles, and the task-assignment notice sent when a
supervisor assigns a task.
"""
import asyncio

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..config import get_config
from ..facility.models import NotificationType, Task
from ..facility.queries import get_space_name, get_user
from ..storage import eq, get_storage
from .dispatcher import get_dispatcher
from .models import list_notifications, mark_all_read, mark_read, unread_count, update_prefs

NOTIFICATION_TYPES = {t.value for t in NotificationType}


def _session_key(request: Request) -> str:
    return request.session.get("user") or get_remote_address(request)


limiter = Limiter(key_func=_session_key)


def _unauthorized():
    return JSONResponse({"ok": False, "error": "Not signed in"}, status_code=401)


async def _json_body(request: Request):
    try:
        data = await request.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def register_notification_routes(app: FastAPI):
    """Register notification endpoints."""

    app.state.limiter = limiter

    @app.get("/api/notifications")
    async def api_list_notifications(request: Request):
        user = request.session.get("user")
        if not user:
            return _unauthorized()
        storage = get_storage()
        items = list_notifications(storage, user)
        return {
            "ok": True,
            "unread": unread_count(storage, user),
            "notifications": [n.to_dict() for n in items],
        }

    @app.post("/api/notifications/read-all")
    async def api_mark_all_read(request: Request):
        user = request.session.get("user")
        if not user:
            return _unauthorized()
        return {"ok": True, "updated": mark_all_read(get_storage(), user)}

    @app.post("/api/notifications/{notification_id}/read")
    async def api_mark_read(notification_id: str, request: Request):
        user = request.session.get("user")
        if not user:
            return _unauthorized()
        if not mark_read(get_storage(), user, notification_id):
            return JSONResponse({"ok": False, "error": "Notification not found"}, status_code=404)
        return {"ok": True}

    @app.put("/api/notifications/prefs")
    async def api_update_prefs(request: Request):
        user = request.session.get("user")
        if not user:
            return _unauthorized()
        data = await _json_body(request)
        if data is None:
            return JSONResponse({"ok": False, "error": "Expected a JSON object body"}, status_code=400)
        prefs = update_prefs(get_storage(), user, data)
        if prefs is None:
            return JSONResponse({"ok": False, "error": "User not found"}, status_code=404)
        return {"ok": True, "prefs": vars(prefs)}

    @app.post("/api/notifications/task-assigned")
    @limiter.limit(get_config("sms_rate_limit"))
    async def api_task_assigned(request: Request):
        user = request.session.get("user")
        if not user:
            return _unauthorized()

        data = await _json_body(request)
        if data is None:
            return JSONResponse({"ok": False, "error": "Expected a JSON object body"}, status_code=400)
        task_id = data.get("task_id")
        assigned_to = data.get("assigned_to")
        if not task_id or not assigned_to:
            return JSONResponse({"ok": False, "error": "task_id and assigned_to required"},
                                status_code=400)
        ntype = data.get("type") or NotificationType.TASK_ASSIGNED.value
        if ntype not in NOTIFICATION_TYPES:
            return JSONResponse({"ok": False, "error": f"Unknown notification type: {ntype}"},
                                status_code=400)

        # Storage and Twilio calls block; keep them off the event loop
        return await asyncio.to_thread(_send_task_assigned, task_id, assigned_to, ntype)


def _send_task_assigned(task_id: str, assigned_to: str, ntype: str):
    storage = get_storage()
    task_row = storage.first("tasks", [eq("id", task_id)])
    if not task_row:
        return JSONResponse({"ok": False, "error": "Task not found"}, status_code=404)
    assignee = get_user(storage, assigned_to)
    if not assignee:
        return JSONResponse({"ok": False, "error": "User not found"}, status_code=404)

    task = Task.from_row(task_row)
    space_name = get_space_name(storage, task.space_id)
    message = (f"SpaceOps: You have been assigned a new task in {space_name} - "
               f"\"{task.description[:80]}\"")

    result = get_dispatcher().notify(assignee, ntype, message,
                                     link=f"/tasks#{task.id}", entity_id=task.id)
    return {
        "ok": True,
        "in_app": result.in_app,
        "sms_sent": result.sms_sent,
        "whatsapp_sent": result.whatsapp_sent,
    }
