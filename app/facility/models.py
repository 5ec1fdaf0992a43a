# ============================================================================
# SpaceOps Facility - Domain Models
# ============================================================================

import json
import datetime
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, Optional

from ..storage import parse_ts, format_ts


class SpaceStatus(str, Enum):
    """Derived traffic-light classification of a space."""
    GREEN = "green"
    AMBER = "amber"
    RED = "red"
    GREY = "grey"


class InspectionStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    EXPIRED = "expired"


class WorkStatus(str, Enum):
    """Shared by tasks and deficiencies."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"


OPEN_STATUSES = (WorkStatus.OPEN.value, WorkStatus.IN_PROGRESS.value)


class TaskPriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ScheduleFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class UserRole(str, Enum):
    ADMIN = "admin"
    SUPERVISOR = "supervisor"
    STAFF = "staff"
    CLIENT = "client"


class NotificationType(str, Enum):
    TASK_ASSIGNED = "task_assigned"
    SLA_WARNING = "sla_warning"
    OVERDUE = "overdue"
    DEFICIENCY_CREATED = "deficiency_created"
    INSPECTION_COMPLETED = "inspection_completed"
    REPORT_SENT = "report_sent"
    INVITATION = "invitation"
    INSPECTION_SCHEDULED = "inspection_scheduled"


def _bool(value) -> bool:
    return bool(value) if value is not None else False


# ============================================================================
# Entities
# ============================================================================

@dataclass
class Building:
    id: str
    name: str = ""
    archived: bool = False

    @classmethod
    def from_row(cls, row: Dict) -> "Building":
        return cls(id=row["id"], name=row.get("name") or "", archived=_bool(row.get("archived")))


@dataclass
class Space:
    id: str
    floor_id: str
    name: str = ""
    pin_x: Optional[float] = None
    pin_y: Optional[float] = None
    deleted_at: Optional[datetime.datetime] = None

    @classmethod
    def from_row(cls, row: Dict) -> "Space":
        return cls(
            id=row["id"],
            floor_id=row["floor_id"],
            name=row.get("name") or "",
            pin_x=row.get("pin_x"),
            pin_y=row.get("pin_y"),
            deleted_at=parse_ts(row.get("deleted_at")),
        )


@dataclass
class Inspection:
    id: str
    space_id: str
    status: str = InspectionStatus.IN_PROGRESS.value
    started_at: Optional[datetime.datetime] = None
    completed_at: Optional[datetime.datetime] = None

    @classmethod
    def from_row(cls, row: Dict) -> "Inspection":
        return cls(
            id=row["id"],
            space_id=row["space_id"],
            status=row.get("status") or InspectionStatus.IN_PROGRESS.value,
            started_at=parse_ts(row.get("started_at")),
            completed_at=parse_ts(row.get("completed_at")),
        )


@dataclass
class Deficiency:
    id: str
    space_id: str
    status: str = WorkStatus.OPEN.value
    resolved_at: Optional[datetime.datetime] = None

    @classmethod
    def from_row(cls, row: Dict) -> "Deficiency":
        return cls(
            id=row["id"],
            space_id=row["space_id"],
            status=row.get("status") or WorkStatus.OPEN.value,
            resolved_at=parse_ts(row.get("resolved_at")),
        )


@dataclass
class Task:
    id: str
    space_id: str
    created_by: str
    description: str = ""
    priority: str = TaskPriority.MEDIUM.value
    status: str = WorkStatus.OPEN.value
    assigned_to: Optional[str] = None
    deficiency_id: Optional[str] = None
    due_date: Optional[datetime.datetime] = None

    @classmethod
    def from_row(cls, row: Dict) -> "Task":
        return cls(
            id=row["id"],
            space_id=row["space_id"],
            created_by=row["created_by"],
            description=row.get("description") or "",
            priority=row.get("priority") or TaskPriority.MEDIUM.value,
            status=row.get("status") or WorkStatus.OPEN.value,
            assigned_to=row.get("assigned_to"),
            deficiency_id=row.get("deficiency_id"),
            due_date=parse_ts(row.get("due_date")),
        )


@dataclass
class NotificationPrefs:
    """
    Typed view of the free-form notification_prefs JSON blob.

    Defaults: in-app on unless explicitly false, SMS on unless explicitly
    false, WhatsApp off unless explicitly true, email on unless explicitly
    false.
    """
    in_app: bool = True
    sms: bool = True
    whatsapp: bool = False
    email: bool = True

    @classmethod
    def from_raw(cls, raw: Any) -> "NotificationPrefs":
        if isinstance(raw, str):
            try:
                raw = json.loads(raw) if raw.strip() else {}
            except ValueError:
                raw = {}
        if not isinstance(raw, dict):
            raw = {}
        return cls(
            in_app=raw.get("in_app") is not False,
            sms=raw.get("sms") is not False,
            whatsapp=raw.get("whatsapp") is True,
            email=raw.get("email") is not False,
        )

    def to_json(self) -> str:
        return json.dumps(asdict(self))


@dataclass
class UserProfile:
    id: str
    name: str = ""
    role: str = UserRole.STAFF.value
    phone: Optional[str] = None
    notification_prefs: NotificationPrefs = field(default_factory=NotificationPrefs)

    @classmethod
    def from_row(cls, row: Dict) -> "UserProfile":
        return cls(
            id=row["id"],
            name=row.get("name") or "",
            role=row.get("role") or UserRole.STAFF.value,
            phone=row.get("phone") or None,
            notification_prefs=NotificationPrefs.from_raw(row.get("notification_prefs")),
        )


@dataclass
class InspectionSchedule:
    id: str
    building_id: str
    frequency: str = ScheduleFrequency.DAILY.value
    time_of_day: str = "09:00"
    day_of_week: Optional[int] = None
    day_of_month: Optional[int] = None
    checklist_template_id: Optional[str] = None
    assigned_to: Optional[str] = None
    enabled: bool = True
    last_triggered_at: Optional[datetime.datetime] = None
    next_due_at: Optional[datetime.datetime] = None

    @classmethod
    def from_row(cls, row: Dict) -> "InspectionSchedule":
        return cls(
            id=row["id"],
            building_id=row["building_id"],
            frequency=row.get("frequency") or ScheduleFrequency.DAILY.value,
            time_of_day=row.get("time_of_day") or "",
            day_of_week=row.get("day_of_week"),
            day_of_month=row.get("day_of_month"),
            checklist_template_id=row.get("checklist_template_id"),
            assigned_to=row.get("assigned_to"),
            enabled=_bool(row.get("enabled")),
            last_triggered_at=parse_ts(row.get("last_triggered_at")),
            next_due_at=parse_ts(row.get("next_due_at")),
        )

    def to_dict(self) -> Dict:
        d = asdict(self)
        d["last_triggered_at"] = format_ts(self.last_triggered_at)
        d["next_due_at"] = format_ts(self.next_due_at)
        return d


@dataclass
class Notification:
    id: str
    user_id: str
    type: str
    message: str
    link: Optional[str] = None
    read: bool = False
    in_app: bool = True
    created_at: Optional[datetime.datetime] = None

    @classmethod
    def from_row(cls, row: Dict) -> "Notification":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            type=row["type"],
            message=row["message"],
            link=row.get("link"),
            read=_bool(row.get("read")),
            in_app=_bool(row.get("in_app")),
            created_at=parse_ts(row.get("created_at")),
        )

    def to_dict(self) -> Dict:
        d = asdict(self)
        d["created_at"] = format_ts(self.created_at)
        return d
