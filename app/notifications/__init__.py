"""
SpaceOps Notifications Module
Deduplicated in-app / SMS / WhatsApp fan-out and the user inbox.
"""
from .dispatcher import NotificationDispatcher, DispatchResult, DEDUP_WINDOWS, get_dispatcher
from .routes import register_notification_routes

__all__ = [
    "NotificationDispatcher",
    "DispatchResult",
    "DEDUP_WINDOWS",
    "get_dispatcher",
    "register_notification_routes",
]
