from typing import List, Mapping, Optional

from bizdesk.constants import TABLE_EVENTS
from bizdesk.models.entities import CalendarEvent
from bizdesk.services.sync.base import EntitySync


class EventSync(EntitySync[CalendarEvent]):
    """Calendar events ordered by date; creator names come from the directory."""

    name = "events"
    tables = (TABLE_EVENTS,)

    def _fetch(self) -> List[CalendarEvent]:
        return self.gateway.list_events()

    def create(self, event: CalendarEvent, created_by: Optional[str] = None) -> CalendarEvent:
        if created_by:
            event.created_by = created_by
        return self._write(self.gateway.create_event, event)

    def update(self, event_id: str, changes: Mapping) -> CalendarEvent:
        return self._write(self.gateway.update_event, event_id, changes)

    def delete(self, event_id: str) -> None:
        self._write(self.gateway.delete_event, event_id)

    def on_date(self, day: str) -> List[CalendarEvent]:
        with self._lock:
            return [event for event in self.items if (event.date or "")[:10] == day]
