"""
SpaceOps Escalation - Scheduler Jobs

In-process periodic invoker for deployments without an external cron.
Uses its own APScheduler BackgroundScheduler instance.
"""
import logging
from apscheduler.schedulers.background import BackgroundScheduler

from ..config import get_config
from ..notifications.dispatcher import get_dispatcher
from ..storage import get_storage
from ..telemetry import capture_exception
from .engine import check_overdue_tasks, check_sla_warnings, trigger_scheduled_inspections
from .retention import cleanup_expired

logger = logging.getLogger(__name__)

_scheduler = None


def get_escalation_scheduler() -> BackgroundScheduler:
    """Get or create the singleton escalation scheduler."""
    global _scheduler
    if _scheduler is None:
        _scheduler = BackgroundScheduler(
            job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 120}
        )
    return _scheduler


def init_escalation_scheduler() -> bool:
    """Register and start the escalation jobs when SCHEDULER_ENABLED is set."""
    if not get_config("scheduler_enabled"):
        logger.info("[Escalation] In-process scheduler disabled; relying on external cron")
        return False

    scheduler = get_escalation_scheduler()
    if scheduler.running:
        return True

    scheduler.add_job(
        _run_overdue_check,
        "interval",
        minutes=get_config("overdue_check_minutes"),
        id="escalation_overdue_check",
        replace_existing=True,
    )
    scheduler.add_job(
        _run_sla_warning,
        "interval",
        minutes=get_config("sla_warning_minutes"),
        id="escalation_sla_warning",
        replace_existing=True,
    )
    scheduler.add_job(
        _run_schedule_trigger,
        "interval",
        minutes=get_config("schedule_trigger_minutes"),
        id="escalation_schedule_trigger",
        replace_existing=True,
    )
    scheduler.add_job(
        _run_cleanup,
        "interval",
        hours=get_config("cleanup_interval_hours"),
        id="escalation_cleanup_expired",
        replace_existing=True,
    )

    scheduler.start()
    logger.info("[Escalation] Scheduler started with overdue, SLA, schedule-trigger, and cleanup jobs")
    return True


def shutdown_escalation_scheduler():
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
    _scheduler = None


def _guarded(name: str, job):
    try:
        job()
    except Exception as e:
        logger.error(f"[Escalation] {name} job failed: {e}", exc_info=True)
        capture_exception(e, {"job": name})


def _run_overdue_check():
    _guarded("overdue-check", lambda: check_overdue_tasks(get_storage(), get_dispatcher()))


def _run_sla_warning():
    _guarded("sla-warning", lambda: check_sla_warnings(get_storage(), get_dispatcher()))


def _run_schedule_trigger():
    _guarded("trigger-scheduled-inspections",
             lambda: trigger_scheduled_inspections(get_storage(), get_dispatcher()))


def _run_cleanup():
    _guarded("cleanup-expired", lambda: cleanup_expired(get_storage()))
