"""
SpaceOps Facility - Query Helpers
"""
import datetime
from typing import List, Optional

from ..storage import Storage, eq, in_, is_null
from .models import (
    Building, Deficiency, Inspection, InspectionStatus, OPEN_STATUSES,
    Space, Task, UserProfile,
)
from .space_status import SpaceWithStatus, compute_space_statuses


def get_building(storage: Storage, building_id: str) -> Optional[Building]:
    row = storage.first("buildings", [eq("id", building_id)])
    return Building.from_row(row) if row else None


def get_user(storage: Storage, user_id: Optional[str]) -> Optional[UserProfile]:
    if not user_id:
        return None
    row = storage.first("users", [eq("id", user_id)])
    return UserProfile.from_row(row) if row else None


def get_space_name(storage: Storage, space_id: str) -> str:
    row = storage.first("spaces", [eq("id", space_id)])
    return row["name"] if row else "Unknown"


def live_spaces(storage: Storage, building_id: str) -> List[Space]:
    """Spaces on any floor of the building that are not soft-deleted."""
    floor_ids = [f["id"] for f in storage.select("floors", [eq("building_id", building_id)])]
    if not floor_ids:
        return []
    rows = storage.select("spaces", [in_("floor_id", floor_ids), is_null("deleted_at")],
                          order_by="name")
    return [Space.from_row(r) for r in rows]


def count_live_spaces(storage: Storage, building_id: str) -> int:
    floor_ids = [f["id"] for f in storage.select("floors", [eq("building_id", building_id)])]
    if not floor_ids:
        return 0
    return storage.count("spaces", [in_("floor_id", floor_ids), is_null("deleted_at")])


def building_space_statuses(storage: Storage, building_id: str,
                            now: Optional[datetime.datetime] = None) -> List[SpaceWithStatus]:
    spaces = live_spaces(storage, building_id)
    space_ids = [s.id for s in spaces]
    inspections = [Inspection.from_row(r) for r in storage.select(
        "inspections", [in_("space_id", space_ids), eq("status", InspectionStatus.COMPLETED.value)])]
    deficiencies = [Deficiency.from_row(r) for r in storage.select(
        "deficiencies", [in_("space_id", space_ids), in_("status", OPEN_STATUSES)])]
    tasks = [Task.from_row(r) for r in storage.select(
        "tasks", [in_("space_id", space_ids), in_("status", OPEN_STATUSES)])]
    return compute_space_statuses(spaces, inspections, deficiencies, tasks, now)
