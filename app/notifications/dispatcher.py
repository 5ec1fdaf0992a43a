"""
SpaceOps Notifications - Dispatcher

notify() fans a message out to the recipient's enabled channels:

  1. dedup check against the notification log (per user, type and entity,
     inside a type-specific window)
  2. in-app row in the notification log
  3. SMS and WhatsApp through the messaging provider

Provider failures are logged and sent to telemetry. They never abort the
caller, and they never block the in-app notification.
"""
import sqlite3
import datetime
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ..facility.models import NotificationType, UserProfile
from ..messaging import BaseProvider, MessagePayload, get_messaging_provider
from ..storage import Storage, get_storage
from ..telemetry import capture_exception
from .models import record_notification, recently_notified

logger = logging.getLogger(__name__)

DEDUP_WINDOWS = {
    NotificationType.OVERDUE.value: datetime.timedelta(hours=1),
    NotificationType.SLA_WARNING.value: datetime.timedelta(hours=4),
    NotificationType.INSPECTION_SCHEDULED.value: datetime.timedelta(hours=4),
}


class DeliveryError(Exception):
    """A provider reported a failed SMS/WhatsApp send."""


@dataclass
class DispatchResult:
    suppressed: bool = False
    in_app: bool = False
    ledger_only: bool = False
    sms_sent: bool = False
    whatsapp_sent: bool = False
    failures: int = 0

    @property
    def delivered(self) -> bool:
        return self.in_app or self.sms_sent or self.whatsapp_sent


class NotificationDispatcher:
    """Preference-aware, deduplicated notification fan-out."""

    def __init__(self, storage: Storage, provider: BaseProvider,
                 capture: Callable = capture_exception):
        self.storage = storage
        self.provider = provider
        self.capture = capture

    def already_notified(self, user_id: str, notification_type: str, entity_id: str,
                         now: datetime.datetime) -> bool:
        window = DEDUP_WINDOWS.get(notification_type)
        if window is None or not entity_id:
            return False
        return recently_notified(self.storage, user_id, notification_type,
                                 entity_id, now - window)

    def notify(
        self,
        user: UserProfile,
        notification_type,
        message: str,
        link: Optional[str] = None,
        entity_id: Optional[str] = None,
        now: Optional[datetime.datetime] = None,
        external: bool = True,
    ) -> DispatchResult:
        """
        Notify one user. With external=False only the in-app channel is used.

        Deduplicated types always leave a row in the log, even when the user
        turned in-app off, so a repeat run inside the window stays silent on
        every channel.
        """
        now = now or datetime.datetime.now()
        ntype = getattr(notification_type, "value", notification_type)

        if self.already_notified(user.id, ntype, entity_id, now):
            logger.debug(f"[Notify] {ntype} for {entity_id} to {user.id} suppressed (recent)")
            return DispatchResult(suppressed=True)

        result = DispatchResult()
        prefs = user.notification_prefs

        if prefs.in_app or ntype in DEDUP_WINDOWS:
            try:
                record_notification(self.storage, user.id, ntype, message, link,
                                    created_at=now, in_app=prefs.in_app)
                result.in_app = prefs.in_app
                result.ledger_only = not prefs.in_app
            except sqlite3.Error as e:
                result.failures += 1
                logger.error(f"[Notify] Failed to record {ntype} for {user.id}: {e}")
                self.capture(e, {"context": "notifications", "type": ntype})

        if not external or not user.phone:
            return result

        if prefs.sms:
            result.sms_sent = self._send(self.provider.send_sms, "sms", user, ntype, message)
            if not result.sms_sent:
                result.failures += 1

        if prefs.whatsapp:
            result.whatsapp_sent = self._send(self.provider.send_whatsapp, "whatsapp", user, ntype, message)
            if not result.whatsapp_sent:
                result.failures += 1

        return result

    def _send(self, send: Callable, channel: str, user: UserProfile,
              ntype: str, message: str) -> bool:
        try:
            outcome = send(MessagePayload(to=user.phone, body=message))
        except Exception as e:
            logger.warning(f"[Notify] {channel} to {user.id} raised: {e}")
            self.capture(e, {"context": channel, "type": ntype})
            return False

        if not outcome.success:
            logger.warning(f"[Notify] {channel} to {user.id} failed: {outcome.error}")
            self.capture(DeliveryError(outcome.error or f"{channel} send failed"),
                         {"context": channel, "type": ntype})
            return False
        return True


_dispatcher: Optional[NotificationDispatcher] = None


def get_dispatcher() -> NotificationDispatcher:
    """Get or create the dispatcher bound to the configured storage and provider."""
    global _dispatcher
    storage = get_storage()
    if _dispatcher is None or _dispatcher.storage is not storage:
        _dispatcher = NotificationDispatcher(storage, get_messaging_provider())
    return _dispatcher
