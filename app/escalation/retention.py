"""
SpaceOps Escalation - Retention Sweeps
"""
import datetime
import logging
from typing import Dict, Optional

from ..facility.models import InspectionStatus
from ..storage import Storage, eq, lt, not_null

logger = logging.getLogger(__name__)

SPACE_PURGE_AFTER = datetime.timedelta(days=30)
INSPECTION_EXPIRE_AFTER = datetime.timedelta(hours=4)


def cleanup_expired(storage: Storage, now: Optional[datetime.datetime] = None) -> Dict[str, int]:
    """
    Hard-delete spaces soft-deleted more than 30 days ago and expire
    in-progress inspections started more than 4 hours ago.

    Both sweeps are set-based; a second run finds nothing to do.
    """
    now = now or datetime.datetime.now()

    purged = storage.delete("spaces", [
        not_null("deleted_at"),
        lt("deleted_at", now - SPACE_PURGE_AFTER),
    ])

    expired = storage.update("inspections", [
        eq("status", InspectionStatus.IN_PROGRESS.value),
        lt("started_at", now - INSPECTION_EXPIRE_AFTER),
    ], {"status": InspectionStatus.EXPIRED.value})

    summary = {"purged_spaces": len(purged), "expired_inspections": expired}
    if purged or expired:
        logger.info(f"[Retention] cleanup: {summary}")
    return summary
