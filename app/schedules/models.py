"""
SpaceOps Schedules - Persistence & Validation

Admin-side create/edit/toggle for inspection schedules, plus the two
operations the trigger job needs (select due, advance). Every write that can
change the recurrence recomputes next_due_at.
"""
import re
import datetime
from typing import Dict, List, Optional

from ..storage import Storage, eq, lte, format_ts
from ..facility.models import InspectionSchedule, ScheduleFrequency
from .clock import first_due, next_due

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d(:[0-5]\d)?$")

FREQUENCIES = tuple(f.value for f in ScheduleFrequency)
WEEKLY_FREQUENCIES = (ScheduleFrequency.WEEKLY.value, ScheduleFrequency.BIWEEKLY.value)


class ScheduleValidationError(ValueError):
    """Raised with a field -> message map when schedule input is invalid."""

    def __init__(self, errors: Dict[str, str]):
        super().__init__("; ".join(f"{k}: {v}" for k, v in errors.items()))
        self.errors = errors


def _int_in_range(value, low: int, high: int) -> Optional[int]:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if low <= number <= high else None


def validate_schedule_input(data: Dict) -> Dict:
    """Normalize admin input. Raises ScheduleValidationError."""
    errors = {}
    clean = {}

    building_id = data.get("building_id")
    if not building_id:
        errors["building_id"] = "Building is required"
    clean["building_id"] = building_id

    frequency = (data.get("frequency") or ScheduleFrequency.DAILY.value).lower()
    if frequency not in FREQUENCIES:
        errors["frequency"] = f"Must be one of {', '.join(FREQUENCIES)}"
    clean["frequency"] = frequency

    time_of_day = str(data.get("time_of_day") or "09:00").strip()
    if not _TIME_RE.match(time_of_day):
        errors["time_of_day"] = "Use 24-hour HH:MM"
    # Seconds are accepted but not stored
    clean["time_of_day"] = time_of_day[:5]

    clean["day_of_week"] = None
    if frequency in WEEKLY_FREQUENCIES:
        raw = data.get("day_of_week", 1)
        day = _int_in_range(1 if raw is None else raw, 0, 6)
        if day is None:
            errors["day_of_week"] = "Must be 0 (Sunday) to 6 (Saturday)"
        clean["day_of_week"] = day

    clean["day_of_month"] = None
    if frequency == ScheduleFrequency.MONTHLY.value:
        raw = data.get("day_of_month", 1)
        day = _int_in_range(1 if raw is None else raw, 1, 28)
        if day is None:
            errors["day_of_month"] = "Must be between 1 and 28"
        clean["day_of_month"] = day

    clean["assigned_to"] = data.get("assigned_to") or None
    clean["checklist_template_id"] = data.get("checklist_template_id") or None
    clean["enabled"] = bool(data.get("enabled", True))

    if errors:
        raise ScheduleValidationError(errors)
    return clean


# --- Queries ---

def list_schedules(storage: Storage, building_id: str = None) -> List[InspectionSchedule]:
    filters = [eq("building_id", building_id)] if building_id else []
    rows = storage.select("inspection_schedules", filters, order_by="created_at")
    return [InspectionSchedule.from_row(r) for r in rows]


def get_schedule(storage: Storage, schedule_id: str) -> Optional[InspectionSchedule]:
    row = storage.first("inspection_schedules", [eq("id", schedule_id)])
    return InspectionSchedule.from_row(row) if row else None


def due_schedules(storage: Storage, now: datetime.datetime) -> List[InspectionSchedule]:
    rows = storage.select("inspection_schedules",
                          [eq("enabled", True), lte("next_due_at", now)],
                          order_by="next_due_at")
    return [InspectionSchedule.from_row(r) for r in rows]


# --- Mutations ---

def create_schedule(storage: Storage, data: Dict, acting_as: Optional[str],
                    now: datetime.datetime = None) -> InspectionSchedule:
    now = now or datetime.datetime.now()
    clean = validate_schedule_input(data)
    if not storage.first("buildings", [eq("id", clean["building_id"])]):
        raise ScheduleValidationError({"building_id": "Building not found"})

    schedule = InspectionSchedule(id="", **clean)
    row = storage.insert("inspection_schedules", {
        **clean,
        "next_due_at": first_due(schedule, now),
        "created_at": format_ts(now),
        "updated_at": format_ts(now),
    }, acting_as=acting_as)
    return get_schedule(storage, row["id"])


def update_schedule(storage: Storage, schedule_id: str, data: Dict,
                    acting_as: Optional[str],
                    now: datetime.datetime = None) -> Optional[InspectionSchedule]:
    now = now or datetime.datetime.now()
    existing = get_schedule(storage, schedule_id)
    if not existing:
        return None

    merged = existing.to_dict()
    merged.update({k: v for k, v in data.items() if k in merged})
    clean = validate_schedule_input(merged)

    schedule = InspectionSchedule(id=schedule_id, **clean)
    storage.update("inspection_schedules", [eq("id", schedule_id)], {
        **clean,
        "next_due_at": first_due(schedule, now),
        "updated_at": format_ts(now),
    }, acting_as=acting_as)
    return get_schedule(storage, schedule_id)


def set_schedule_enabled(storage: Storage, schedule_id: str, enabled: bool,
                         acting_as: Optional[str],
                         now: datetime.datetime = None) -> Optional[InspectionSchedule]:
    now = now or datetime.datetime.now()
    existing = get_schedule(storage, schedule_id)
    if not existing:
        return None
    values = {"enabled": enabled, "updated_at": format_ts(now)}
    if enabled:
        values["next_due_at"] = first_due(existing, now)
    storage.update("inspection_schedules", [eq("id", schedule_id)], values, acting_as=acting_as)
    return get_schedule(storage, schedule_id)


def advance_schedule(storage: Storage, schedule: InspectionSchedule,
                     now: datetime.datetime) -> datetime.datetime:
    """Move a fired schedule to its next occurrence and stamp last_triggered_at."""
    upcoming = next_due(schedule, now)
    storage.update("inspection_schedules", [eq("id", schedule.id)], {
        "next_due_at": upcoming,
        "last_triggered_at": now,
        "updated_at": now,
    })
    return upcoming
