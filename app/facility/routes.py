"""
SpaceOps Facility - API Routes
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..storage import get_storage
from .queries import building_space_statuses, get_building
from .space_status import summarize_statuses


def register_facility_routes(app: FastAPI):
    """Register facility endpoints."""

    @app.get("/api/buildings/{building_id}/space-status")
    async def api_space_status(building_id: str, request: Request):
        if not request.session.get("user"):
            return JSONResponse({"ok": False, "error": "Not signed in"}, status_code=401)

        storage = get_storage()
        building = get_building(storage, building_id)
        if not building:
            return JSONResponse({"ok": False, "error": "Building not found"}, status_code=404)

        statuses = building_space_statuses(storage, building_id)
        return {
            "ok": True,
            "building": {"id": building.id, "name": building.name, "archived": building.archived},
            "summary": summarize_statuses(statuses),
            "spaces": [s.to_dict() for s in statuses],
        }
