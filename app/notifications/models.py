"""
SpaceOps Notifications - Log & Inbox Queries

The notifications table is append-only and doubles as the deduplication
ledger for the escalation jobs.
"""
import datetime
from typing import Dict, List, Optional

from ..storage import Storage, contains, eq, gte, format_ts
from ..facility.models import Notification, NotificationPrefs


def recently_notified(storage: Storage, user_id: str, notification_type: str,
                      entity_id: str, since: datetime.datetime) -> bool:
    """True when the user already got this type for this entity since `since`."""
    return storage.count("notifications", [
        eq("user_id", user_id),
        eq("type", notification_type),
        gte("created_at", since),
        contains("link", entity_id),
    ]) > 0


def record_notification(storage: Storage, user_id: str, notification_type: str,
                        message: str, link: Optional[str],
                        created_at: datetime.datetime, in_app: bool = True) -> Dict:
    return storage.insert("notifications", {
        "user_id": user_id,
        "type": notification_type,
        "message": message,
        "link": link,
        "read": False,
        "in_app": in_app,
        "created_at": format_ts(created_at),
    })


def list_notifications(storage: Storage, user_id: str, limit: int = 100) -> List[Notification]:
    rows = storage.select("notifications", [eq("user_id", user_id), eq("in_app", True)],
                          order_by="created_at", descending=True, limit=limit)
    return [Notification.from_row(r) for r in rows]


def unread_count(storage: Storage, user_id: str) -> int:
    return storage.count("notifications", [
        eq("user_id", user_id), eq("in_app", True), eq("read", False)])


def mark_read(storage: Storage, user_id: str, notification_id: str) -> bool:
    changed = storage.update("notifications",
                             [eq("id", notification_id), eq("user_id", user_id)],
                             {"read": True}, acting_as=user_id)
    return changed > 0


def mark_all_read(storage: Storage, user_id: str) -> int:
    return storage.update("notifications",
                          [eq("user_id", user_id), eq("read", False)],
                          {"read": True}, acting_as=user_id)


def update_prefs(storage: Storage, user_id: str, changes: Dict) -> Optional[NotificationPrefs]:
    """Apply boolean channel toggles to a user's notification_prefs."""
    row = storage.first("users", [eq("id", user_id)])
    if not row:
        return None
    prefs = NotificationPrefs.from_raw(row.get("notification_prefs"))
    for key in ("in_app", "sms", "whatsapp", "email"):
        if key in changes and isinstance(changes[key], bool):
            setattr(prefs, key, changes[key])
    storage.update("users", [eq("id", user_id)],
                   {"notification_prefs": prefs.to_json()}, acting_as=user_id)
    return prefs
