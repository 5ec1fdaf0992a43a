"""
SpaceOps Facility - Space Status

Derives the traffic-light status of each space from its inspection,
deficiency and task history. Always computed fresh; nothing is cached.
"""
import datetime
from collections import defaultdict
from dataclasses import dataclass, asdict
from typing import Dict, Iterable, List, Optional

from .models import (
    Deficiency, Inspection, InspectionStatus, OPEN_STATUSES, Space,
    SpaceStatus, Task, TaskPriority,
)
from ..storage import format_ts

STATUS_LABELS = {
    SpaceStatus.GREEN: "Passed",
    SpaceStatus.AMBER: "Open Issues",
    SpaceStatus.RED: "Critical",
    SpaceStatus.GREY: "Not Inspected",
}


@dataclass
class SpaceWithStatus:
    space_id: str
    space_name: str
    floor_id: str
    pin_x: Optional[float]
    pin_y: Optional[float]
    status: SpaceStatus
    open_deficiency_count: int
    last_inspected_at: Optional[datetime.datetime]

    def to_dict(self) -> Dict:
        d = asdict(self)
        d["status"] = self.status.value
        d["label"] = STATUS_LABELS[self.status]
        d["last_inspected_at"] = format_ts(self.last_inspected_at)
        return d


def calculate_space_status(
    last_inspection: Optional[Inspection],
    open_deficiencies: List[Deficiency],
    open_tasks: List[Task],
    now: Optional[datetime.datetime] = None,
) -> SpaceStatus:
    """
    Classify one space. First matching rule wins:
    never inspected -> grey, critical or overdue open task -> red,
    any open deficiency or task -> amber, otherwise green.

    Callers pass only open/in-progress deficiencies and tasks.
    """
    if last_inspection is None or last_inspection.completed_at is None:
        return SpaceStatus.GREY

    now = now or datetime.datetime.now()
    has_critical = any(t.priority == TaskPriority.CRITICAL.value for t in open_tasks)
    has_overdue = any(t.due_date is not None and t.due_date < now for t in open_tasks)
    if has_critical or has_overdue:
        return SpaceStatus.RED

    if open_deficiencies or open_tasks:
        return SpaceStatus.AMBER

    return SpaceStatus.GREEN


def compute_space_statuses(
    spaces: Iterable[Space],
    inspections: Iterable[Inspection],
    deficiencies: Iterable[Deficiency],
    tasks: Iterable[Task],
    now: Optional[datetime.datetime] = None,
) -> List[SpaceWithStatus]:
    """Status for every space, grouping the per-space collections in one pass."""
    now = now or datetime.datetime.now()

    latest: Dict[str, Inspection] = {}
    for insp in inspections:
        if insp.status != InspectionStatus.COMPLETED.value or insp.completed_at is None:
            continue
        current = latest.get(insp.space_id)
        if current is None or insp.completed_at > current.completed_at:
            latest[insp.space_id] = insp

    open_defs = defaultdict(list)
    for d in deficiencies:
        if d.status in OPEN_STATUSES:
            open_defs[d.space_id].append(d)

    open_tasks = defaultdict(list)
    for t in tasks:
        if t.status in OPEN_STATUSES:
            open_tasks[t.space_id].append(t)

    results = []
    for space in spaces:
        last = latest.get(space.id)
        defs = open_defs.get(space.id, [])
        results.append(SpaceWithStatus(
            space_id=space.id,
            space_name=space.name,
            floor_id=space.floor_id,
            pin_x=space.pin_x,
            pin_y=space.pin_y,
            status=calculate_space_status(last, defs, open_tasks.get(space.id, []), now),
            open_deficiency_count=len(defs),
            last_inspected_at=last.completed_at if last else None,
        ))
    return results


def summarize_statuses(statuses: Iterable[SpaceWithStatus]) -> Dict[str, int]:
    summary = {s.value: 0 for s in SpaceStatus}
    for item in statuses:
        summary[item.status.value] += 1
    return summary
