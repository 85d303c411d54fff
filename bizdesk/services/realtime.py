"""In-process change feed for row-level mutations.

Every write performed through a store of this process is published here as a
:class:`ChangeEvent`; sync stores subscribe per table (optionally restricted
by a row filter such as ``{"user_id": uid}``) and the SSE endpoint relays the
same events to browsers.
"""

import itertools
import json
import logging
import time
from collections import deque
from threading import Lock
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"
ALL_EVENTS = "*"

_event_ids = itertools.count(1)


class ChangeEvent:
    """One row mutation announced on the feed."""

    def __init__(
        self,
        table: str,
        event_type: str,
        record: Optional[Dict[str, Any]] = None,
        old_record: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.table = table
        self.event_type = event_type
        self.record = record or {}
        self.old_record = old_record or {}
        self.timestamp = time.time()
        self.id = next(_event_ids)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "table": self.table,
            "eventType": self.event_type,
            "new": self.record,
            "old": self.old_record,
            "timestamp": self.timestamp,
        }

    def to_sse(self) -> str:
        """Convert event to Server-Sent Events format."""
        return f"id: {self.id}\ndata: {json.dumps(self.to_payload(), default=str)}\n\n"

    def matches(self, table: str, event: str, filters: Optional[Mapping[str, Any]]) -> bool:
        if table != self.table:
            return False
        if event != ALL_EVENTS and event != self.event_type:
            return False
        if filters:
            # Deletes only carry the previous row.
            row = self.record or self.old_record
            for column, value in filters.items():
                if row.get(column) != value:
                    return False
        return True


class Subscription:
    """Handle returned by :meth:`ChangeFeed.subscribe`."""

    def __init__(
        self,
        feed: "ChangeFeed",
        table: str,
        callback: Callable[[ChangeEvent], None],
        event: str = ALL_EVENTS,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.feed = feed
        self.table = table
        self.callback = callback
        self.event = event
        self.filters = dict(filters or {})
        self.active = True

    def unsubscribe(self) -> None:
        self.feed.unsubscribe(self)


class ChangeFeed:
    """
    Per-table subscriptions over the writes of this process.

    Callbacks run synchronously on the publishing thread, after the write
    committed. A failing callback is logged and does not affect the writer
    nor the remaining subscribers.
    """

    def __init__(self, max_history: int = 1000) -> None:
        self._subscriptions: List[Subscription] = []
        self._lock = Lock()
        self._history: Deque[ChangeEvent] = deque(maxlen=max_history)

    def subscribe(
        self,
        table: str,
        callback: Callable[[ChangeEvent], None],
        *,
        event: str = ALL_EVENTS,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> Subscription:
        if event not in (ALL_EVENTS, INSERT, UPDATE, DELETE):
            raise ValueError(f"unsupported change event: {event}")
        subscription = Subscription(self, table, callback, event, filters)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscription.active = False
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def publish(
        self,
        table: str,
        event_type: str,
        record: Optional[Dict[str, Any]] = None,
        old_record: Optional[Dict[str, Any]] = None,
    ) -> ChangeEvent:
        event = ChangeEvent(table, event_type, record, old_record)
        with self._lock:
            self._history.append(event)
            targets = [
                sub for sub in self._subscriptions
                if event.matches(sub.table, sub.event, sub.filters)
            ]

        for subscription in targets:
            if not subscription.active:
                continue
            try:
                subscription.callback(event)
            except Exception:  # pylint: disable=broad-except
                logger.exception(
                    "Change feed callback failed",
                    extra={"table": table, "event_type": event_type},
                )
        return event

    def recent_events(self, since_id: Optional[int] = None) -> List[ChangeEvent]:
        with self._lock:
            if since_id is None:
                return list(self._history)
            return [event for event in self._history if event.id > since_id]

    def subscriber_count(self, table: Optional[str] = None) -> int:
        with self._lock:
            if table is None:
                return len(self._subscriptions)
            return sum(1 for sub in self._subscriptions if sub.table == table)
