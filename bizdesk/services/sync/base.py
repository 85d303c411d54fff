"""Shared behaviour of the per-entity sync stores."""

import logging
import threading
from typing import Any, Callable, Generic, List, Optional, Tuple, TypeVar

from bizdesk.services.gateway import RemoteGateway
from bizdesk.services.realtime import ChangeEvent, ChangeFeed, Subscription
from bizdesk.services.store import AuthBackend, AuthError, StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EntitySync(Generic[T]):
    """
    Locally cached, ordered copy of one remote collection.

    Lifecycle:
        ``start()`` fetches everything once a session exists and subscribes to
        the change feed of ``tables``; any change re-fetches the whole
        collection. ``close()`` unsubscribes and marks the store inactive so a
        fetch that resolves afterwards is discarded.

    Mutations perform exactly one remote write and then re-fetch, so the cache
    always reflects at least that write. A failed write is re-raised and the
    cache is left untouched. A failed fetch keeps the previous cache and
    records ``error``.
    """

    name = "entity"
    tables: Tuple[str, ...] = ()

    def __init__(self, gateway: RemoteGateway, feed: ChangeFeed, auth: AuthBackend) -> None:
        self.gateway = gateway
        self.feed = feed
        self.auth = auth
        self.items: List[T] = []
        self.loading = True
        self.error: Optional[str] = None
        self._active = False
        self._subscriptions: List[Subscription] = []
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # lifecycle
    @property
    def active(self) -> bool:
        return self._active

    def start(self) -> None:
        with self._lock:
            if self._active:
                return
            self._active = True

        try:
            session = self.auth.get_session()
        except AuthError as exc:
            logger.warning("%s sync: session check failed: %s", self.name, exc)
            session = None

        if session is None:
            with self._lock:
                self.items = []
                self.loading = False
            return

        self._subscribe()
        self.refresh()

    def close(self) -> None:
        with self._lock:
            self._active = False
            subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription.unsubscribe()

    def _subscription_filters(self) -> Optional[dict]:
        return None

    def _subscribe(self) -> None:
        filters = self._subscription_filters()
        subscriptions = [
            self.feed.subscribe(table, self._on_change, filters=filters)
            for table in self.tables
        ]
        with self._lock:
            self._subscriptions.extend(subscriptions)

    def _on_change(self, event: ChangeEvent) -> None:
        if not self._active:
            return
        logger.debug("%s sync: %s on %s, refreshing", self.name, event.event_type, event.table)
        self.refresh()

    # ------------------------------------------------------------------
    # reads
    def _fetch(self) -> List[T]:
        raise NotImplementedError

    def refresh(self) -> bool:
        """Full re-fetch. Returns ``False`` when the fetch failed or was discarded."""
        with self._lock:
            self.loading = True
        try:
            items = self._fetch()
        except StoreError as exc:
            logger.warning("%s sync: fetch failed: %s", self.name, exc)
            with self._lock:
                if self._active:
                    self.error = str(exc)
                self.loading = False
            return False

        with self._lock:
            if not self._active:
                return False
            self.items = items
            self.error = None
            self.loading = False
        return True

    def get(self, item_id: str) -> Optional[T]:
        with self._lock:
            for item in self.items:
                if getattr(item, "id", None) == item_id:
                    return item
        return None

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "items": [item.to_dict() for item in self.items],
                "loading": self.loading,
                "error": self.error,
            }

    # ------------------------------------------------------------------
    # writes
    def _write(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        result = func(*args, **kwargs)
        self.refresh()
        return result
