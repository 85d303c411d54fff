"""Per-entity sync stores (cache + change-feed invalidation)."""

from bizdesk.services.sync.base import EntitySync
from bizdesk.services.sync.clients import ClientSync
from bizdesk.services.sync.events import EventSync
from bizdesk.services.sync.notifications import NotificationInbox
from bizdesk.services.sync.tasks import TaskSync
from bizdesk.services.sync.team import TeamSync
from bizdesk.services.sync.transactions import TransactionSync

__all__ = [
    "ClientSync",
    "EntitySync",
    "EventSync",
    "NotificationInbox",
    "TaskSync",
    "TeamSync",
    "TransactionSync",
]
