"""
SpaceOps Inspection Schedules Module
Recurrence clock and schedule administration.
"""
from .clock import next_due, first_due, describe_schedule
from .routes import register_schedule_routes

__all__ = [
    "next_due",
    "first_due",
    "describe_schedule",
    "register_schedule_routes",
]
