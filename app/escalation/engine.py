"""
SpaceOps Escalation - Check Engine

Three periodic passes over current state:

  check_overdue_tasks            open tasks past their due date
  check_sla_warnings             open, assigned tasks due within the next 4 hours
  trigger_scheduled_inspections  enabled schedules whose next_due_at has passed

Every pass is stateless and safe to re-run: repeat notifications are
suppressed by the dispatcher's time-windowed dedup, and schedules are always
advanced past `now`. A failure on one candidate is logged, reported, and the
loop moves on.
"""
import datetime
import logging
from typing import Dict, List, Optional

from ..facility.models import (
    NotificationType, OPEN_STATUSES, Task, UserRole, UserProfile,
)
from ..facility.queries import count_live_spaces, get_building, get_space_name, get_user
from ..notifications.dispatcher import NotificationDispatcher
from ..schedules.models import advance_schedule, due_schedules
from ..storage import Storage, eq, gt, in_, lt, lte, not_null
from ..telemetry import capture_exception

logger = logging.getLogger(__name__)

SLA_WARNING_HORIZON = datetime.timedelta(hours=4)
SCHEDULE_RECIPIENT_ROLES = (UserRole.ADMIN.value, UserRole.SUPERVISOR.value)


def _task_link(task: Task) -> str:
    return f"/tasks#{task.id}"


def _overdue_label(task: Task, now: datetime.datetime) -> str:
    days = (now - task.due_date).days
    return f"{days}d" if days >= 1 else "<1d"


def _open_tasks(storage: Storage, *filters) -> List[Task]:
    rows = storage.select("tasks", [in_("status", OPEN_STATUSES), not_null("due_date"), *filters],
                          order_by="due_date")
    return [Task.from_row(r) for r in rows]


# ============================================================================
# Overdue check
# ============================================================================

def check_overdue_tasks(storage: Storage, dispatcher: NotificationDispatcher,
                        now: Optional[datetime.datetime] = None) -> Dict[str, int]:
    """
    Notify about every open task whose due date has passed.

    The creator gets an in-app notice. A distinct assignee is notified on
    every enabled channel. When the assignee is the creator, the single
    notice goes out on every channel.
    """
    now = now or datetime.datetime.now()
    summary = {"checked": 0, "overdue": 0, "notified": 0}

    tasks = _open_tasks(storage, lt("due_date", now))
    summary["checked"] = len(tasks)

    for task in tasks:
        summary["overdue"] += 1
        try:
            summary["notified"] += _notify_overdue(storage, dispatcher, task, now)
        except Exception as e:
            logger.error(f"[Escalation] overdue check failed for task {task.id}: {e}", exc_info=True)
            capture_exception(e, {"job": "overdue-check", "task_id": task.id})

    logger.info(f"[Escalation] overdue-check: {summary}")
    return summary


def _notify_overdue(storage: Storage, dispatcher: NotificationDispatcher,
                    task: Task, now: datetime.datetime) -> int:
    space_name = get_space_name(storage, task.space_id)
    message = (f"SpaceOps: Task in {space_name} is {_overdue_label(task, now)} overdue - "
               f"\"{task.description[:60]}\"")
    notified = 0
    assignee_is_creator = task.assigned_to == task.created_by

    creator = get_user(storage, task.created_by)
    if creator:
        result = dispatcher.notify(creator, NotificationType.OVERDUE, message,
                                   link=_task_link(task), entity_id=task.id, now=now,
                                   external=assignee_is_creator)
        notified += int(result.delivered)
    else:
        logger.warning(f"[Escalation] task {task.id} creator {task.created_by} not found")

    if task.assigned_to and not assignee_is_creator:
        assignee = get_user(storage, task.assigned_to)
        if assignee:
            result = dispatcher.notify(assignee, NotificationType.OVERDUE, message,
                                       link=_task_link(task), entity_id=task.id, now=now)
            notified += int(result.delivered)
        else:
            logger.warning(f"[Escalation] task {task.id} assignee {task.assigned_to} not found")

    return notified


# ============================================================================
# SLA warning
# ============================================================================

def check_sla_warnings(storage: Storage, dispatcher: NotificationDispatcher,
                       now: Optional[datetime.datetime] = None) -> Dict[str, int]:
    """Warn assignees about open tasks falling due within the next 4 hours."""
    now = now or datetime.datetime.now()
    summary = {"checked": 0, "notified": 0, "sms_sent": 0}

    tasks = _open_tasks(storage, not_null("assigned_to"),
                        gt("due_date", now), lte("due_date", now + SLA_WARNING_HORIZON))
    summary["checked"] = len(tasks)

    for task in tasks:
        try:
            assignee = get_user(storage, task.assigned_to)
            if not assignee:
                logger.warning(f"[Escalation] task {task.id} assignee {task.assigned_to} not found")
                continue

            hours_left = max(1, round((task.due_date - now).total_seconds() / 3600))
            space_name = get_space_name(storage, task.space_id)
            message = (f"SpaceOps SLA Warning: Task in {space_name} is due in {hours_left}h - "
                       f"\"{task.description[:60]}\"")

            result = dispatcher.notify(assignee, NotificationType.SLA_WARNING, message,
                                       link=_task_link(task), entity_id=task.id, now=now)
            summary["notified"] += int(result.delivered)
            summary["sms_sent"] += int(result.sms_sent)
        except Exception as e:
            logger.error(f"[Escalation] SLA warning failed for task {task.id}: {e}", exc_info=True)
            capture_exception(e, {"job": "sla-warning", "task_id": task.id})

    logger.info(f"[Escalation] sla-warning: {summary}")
    return summary


# ============================================================================
# Schedule trigger
# ============================================================================

def _schedule_recipients(storage: Storage, schedule) -> List[UserProfile]:
    """The explicit assignee, else every admin/supervisor assigned to the building."""
    if schedule.assigned_to:
        user = get_user(storage, schedule.assigned_to)
        if user:
            return [user]
        logger.warning(f"[Escalation] schedule {schedule.id} assignee {schedule.assigned_to} not found")
        return []

    user_ids = [a["user_id"] for a in storage.select(
        "building_assignments", [eq("building_id", schedule.building_id)])]
    if not user_ids:
        return []
    rows = storage.select("users", [in_("id", user_ids), in_("role", SCHEDULE_RECIPIENT_ROLES)])
    return [UserProfile.from_row(r) for r in rows]


def trigger_scheduled_inspections(storage: Storage, dispatcher: NotificationDispatcher,
                                  now: Optional[datetime.datetime] = None) -> Dict[str, int]:
    """
    Fire every enabled schedule whose next_due_at has passed.

    Each fired schedule is advanced to its next occurrence whether or not
    anyone was notified. Schedules on archived or missing buildings are
    advanced without notifying.
    """
    now = now or datetime.datetime.now()
    summary = {"checked": 0, "notified": 0, "advanced": 0, "skipped_archived": 0}

    schedules = due_schedules(storage, now)
    summary["checked"] = len(schedules)

    for schedule in schedules:
        try:
            building = get_building(storage, schedule.building_id)
            if building is None or building.archived:
                if building is None:
                    logger.warning(f"[Escalation] schedule {schedule.id} building "
                                   f"{schedule.building_id} not found, advancing")
                summary["skipped_archived"] += 1
            else:
                summary["notified"] += _notify_schedule(storage, dispatcher, schedule, building, now)
        except Exception as e:
            logger.error(f"[Escalation] schedule {schedule.id} notify failed: {e}", exc_info=True)
            capture_exception(e, {"job": "trigger-scheduled-inspections", "schedule_id": schedule.id})

        try:
            upcoming = advance_schedule(storage, schedule, now)
            summary["advanced"] += 1
            logger.debug(f"[Escalation] schedule {schedule.id} next due {upcoming}")
        except Exception as e:
            logger.error(f"[Escalation] schedule {schedule.id} advance failed: {e}", exc_info=True)
            capture_exception(e, {"job": "trigger-scheduled-inspections", "schedule_id": schedule.id})

    logger.info(f"[Escalation] trigger-scheduled-inspections: {summary}")
    return summary


def _notify_schedule(storage: Storage, dispatcher: NotificationDispatcher,
                     schedule, building, now: datetime.datetime) -> int:
    space_count = count_live_spaces(storage, building.id)
    message = (f"SpaceOps: Inspection scheduled for {building.name} ({space_count} spaces). "
               f"Please begin inspections.")
    link = f"/buildings/{building.id}?schedule={schedule.id}"

    notified = 0
    for user in _schedule_recipients(storage, schedule):
        result = dispatcher.notify(user, NotificationType.INSPECTION_SCHEDULED, message,
                                   link=link, entity_id=schedule.id, now=now)
        notified += int(result.delivered)
    return notified
