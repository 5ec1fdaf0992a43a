"""
SpaceOps Escalation Module
Overdue, SLA-warning and schedule-trigger passes plus retention sweeps.
"""
from .engine import check_overdue_tasks, check_sla_warnings, trigger_scheduled_inspections
from .retention import cleanup_expired
from .routes import register_cron_routes
from .scheduler_jobs import init_escalation_scheduler, shutdown_escalation_scheduler

__all__ = [
    "check_overdue_tasks",
    "check_sla_warnings",
    "trigger_scheduled_inspections",
    "cleanup_expired",
    "register_cron_routes",
    "init_escalation_scheduler",
    "shutdown_escalation_scheduler",
]
