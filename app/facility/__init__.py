"""
SpaceOps Facility Module
Domain models and derived space status.
"""
from .routes import register_facility_routes
from .space_status import calculate_space_status, compute_space_statuses, STATUS_LABELS

__all__ = [
    "register_facility_routes",
    "calculate_space_status",
    "compute_space_statuses",
    "STATUS_LABELS",
]
