"""
Notification inbox of the signed-in user.

Read-state changes are applied to the cache first and then written; a failed
write restores the previous cache and re-raises, a successful one is
reconciled by a full re-fetch.
"""

import copy
import logging
from typing import List, Optional

from bizdesk.constants import TABLE_NOTIFICATIONS
from bizdesk.models.entities import Notification
from bizdesk.services.store import StoreError
from bizdesk.services.sync.base import EntitySync

logger = logging.getLogger(__name__)


class NotificationInbox(EntitySync[Notification]):
    name = "notifications"
    tables = (TABLE_NOTIFICATIONS,)

    def __init__(self, gateway, feed, auth, user_id: str) -> None:
        super().__init__(gateway, feed, auth)
        self.user_id = user_id

    def _subscription_filters(self) -> Optional[dict]:
        return {"user_id": self.user_id}

    def _fetch(self) -> List[Notification]:
        return self.gateway.list_notifications(self.user_id)

    @property
    def unread_count(self) -> int:
        with self._lock:
            return sum(1 for item in self.items if not item.is_read)

    def snapshot(self) -> dict:
        data = super().snapshot()
        data["unreadCount"] = self.unread_count
        return data

    def _optimistic(self, apply, write) -> None:
        with self._lock:
            previous = copy.deepcopy(self.items)
            self.items = apply(copy.deepcopy(self.items))
        try:
            write()
        except StoreError:
            logger.warning("Notification write failed; restoring previous state", exc_info=True)
            with self._lock:
                self.items = previous
            raise
        self.refresh()

    def mark_read(self, notification_id: str) -> None:
        def apply(items):
            for item in items:
                if item.id == notification_id:
                    item.is_read = True
            return items

        self._optimistic(apply, lambda: self.gateway.mark_notification_read(notification_id))

    def mark_all_read(self) -> None:
        def apply(items):
            for item in items:
                item.is_read = True
            return items

        self._optimistic(apply, lambda: self.gateway.mark_all_notifications_read(self.user_id))

    def delete(self, notification_id: str) -> None:
        self._optimistic(
            lambda items: [item for item in items if item.id != notification_id],
            lambda: self.gateway.delete_notification(notification_id),
        )
