"""
Remote Data Gateway.

Typed CRUD over the store collaborator for tasks, clients, calendar events,
transactions, notifications and the user directory. Rows go in and out as
wire dicts; callers only see entities.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Mapping, Optional

from bizdesk.constants import (
    TABLE_CLIENTS,
    TABLE_EVENTS,
    TABLE_NOTIFICATIONS,
    TABLE_TASKS,
    TABLE_TRANSACTIONS,
    TABLE_USERS,
    VIEW_CLIENTS_WITH_USERS,
    VIEW_TASKS_WITH_USERS,
    TaskStatus,
)
from bizdesk.models.entities import (
    CalendarEvent,
    Client,
    Notification,
    Profile,
    Task,
    Transaction,
    default_transaction_status,
)
from bizdesk.services.store import (
    ConflictError,
    NotFoundError,
    Order,
    Store,
    StoreError,
    eq,
    gte,
    is_null,
    neq,
    not_null,
)
from bizdesk.utils.datetime_utils import to_iso

logger = logging.getLogger(__name__)

DEDUP_WINDOW = timedelta(hours=24)


class RemoteGateway:
    def __init__(self, store: Store) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # helpers
    def _one(self, rows: List[dict], table: str, row_id) -> dict:
        if not rows:
            raise NotFoundError(f"{table} row {row_id} not found", status=404)
        return rows[0]

    def _update_by_id(self, table: str, row_id: str, values: dict) -> dict:
        return self._one(self.store.update(table, values, [eq("id", row_id)]), table, row_id)

    def _delete_by_id(self, table: str, row_id: str) -> None:
        self._one(self.store.delete(table, [eq("id", row_id)]), table, row_id)

    # ------------------------------------------------------------------
    # users / profiles
    def list_users(self) -> List[Profile]:
        rows = self.store.select(TABLE_USERS, order=Order("created_at", ascending=True))
        return [Profile.from_row(row) for row in rows]

    def user_names(self) -> Dict[str, str]:
        rows = self.store.select(TABLE_USERS, columns="id,name")
        return {row["id"]: row.get("name") or "" for row in rows}

    def get_profile(self, user_id: str) -> Optional[Profile]:
        rows = self.store.select(TABLE_USERS, filters=[eq("id", user_id)], limit=1)
        return Profile.from_row(rows[0]) if rows else None

    def task_assignments(self) -> List[dict]:
        """``responsible_id``/``status``/``priority`` of every task, for team metrics."""
        return self.store.select(TABLE_TASKS, columns="responsible_id,status,priority")

    def client_owners(self) -> List[dict]:
        return self.store.select(TABLE_CLIENTS, columns="responsible_id,name")

    def create_profile(self, profile: Profile) -> Profile:
        return Profile.from_row(self.store.insert(TABLE_USERS, profile.to_row()))

    def update_profile(self, user_id: str, changes: Mapping) -> Profile:
        return Profile.from_row(self._update_by_id(TABLE_USERS, user_id, Profile.wire_changes(changes)))

    # ------------------------------------------------------------------
    # tasks
    def list_tasks(self) -> List[Task]:
        order = Order("created_at", ascending=False)
        try:
            rows = self.store.select(VIEW_TASKS_WITH_USERS, order=order)
            return [Task.from_row(row) for row in rows]
        except StoreError as exc:
            logger.warning("View %s unavailable (%s); reading %s directly", VIEW_TASKS_WITH_USERS, exc, TABLE_TASKS)
        rows = self.store.select(TABLE_TASKS, order=order)
        names = self.user_names()
        return [Task.from_row(row, names) for row in rows]

    def get_task(self, task_id: str) -> Task:
        rows = self.store.select(TABLE_TASKS, filters=[eq("id", task_id)], limit=1)
        return Task.from_row(self._one(rows, TABLE_TASKS, task_id))

    def list_deadline_candidates(self) -> List[Task]:
        """Tasks with a responsible and a due date that are not Done."""
        rows = self.store.select(
            TABLE_TASKS,
            columns="id,title,due_date,responsible_id,status",
            filters=[
                not_null("responsible_id"),
                not_null("due_date"),
                neq("status", TaskStatus.DONE.value),
            ],
        )
        return [Task.from_row(row) for row in rows]

    def create_task(self, task: Task, created_by: Optional[str] = None) -> Task:
        row = task.to_row()
        if created_by:
            row["created_by"] = created_by
        return Task.from_row(self.store.insert(TABLE_TASKS, row))

    def update_task(self, task_id: str, changes: Mapping) -> Task:
        return Task.from_row(self._update_by_id(TABLE_TASKS, task_id, Task.wire_changes(changes)))

    def delete_task(self, task_id: str) -> None:
        self._delete_by_id(TABLE_TASKS, task_id)

    # ------------------------------------------------------------------
    # clients
    def list_clients(self) -> List[Client]:
        order = Order("created_at", ascending=False)
        try:
            rows = self.store.select(VIEW_CLIENTS_WITH_USERS, order=order)
            return [Client.from_row(row) for row in rows]
        except StoreError as exc:
            logger.warning("View %s unavailable (%s); reading %s directly", VIEW_CLIENTS_WITH_USERS, exc, TABLE_CLIENTS)
        rows = self.store.select(TABLE_CLIENTS, order=order)
        names = self.user_names()
        return [Client.from_row(row, names) for row in rows]

    def get_client(self, client_id: str) -> Client:
        rows = self.store.select(TABLE_CLIENTS, filters=[eq("id", client_id)], limit=1)
        return Client.from_row(self._one(rows, TABLE_CLIENTS, client_id))

    def create_client(self, client: Client) -> Client:
        return Client.from_row(self.store.insert(TABLE_CLIENTS, client.to_row()))

    def update_client(self, client_id: str, changes: Mapping) -> Client:
        return Client.from_row(self._update_by_id(TABLE_CLIENTS, client_id, Client.wire_changes(changes)))

    def delete_client(self, client_id: str) -> None:
        self._delete_by_id(TABLE_CLIENTS, client_id)

    def claim_client(self, client_id: str, user_id: str, activity: Optional[str] = None) -> Client:
        """
        Assign ``user_id`` as responsible only while the lead is unclaimed.

        First write wins: the update is conditional on ``responsible_id IS
        NULL``. When it matches nothing the row is re-read; a lead already
        owned by ``user_id`` is returned as is, any other owner raises
        :class:`ConflictError`.
        """
        changes = {"responsible_id": user_id}
        if activity is not None:
            changes["last_activity"] = activity
        rows = self.store.update(
            TABLE_CLIENTS,
            Client.wire_changes(changes),
            [eq("id", client_id), is_null("responsible_id")],
        )
        if rows:
            return Client.from_row(rows[0])

        current = self.get_client(client_id)
        if current.responsible_id == user_id:
            return current
        raise ConflictError(
            f"lead {client_id} was already claimed by another user",
            code="lead_already_claimed",
            status=409,
        )

    # ------------------------------------------------------------------
    # calendar
    def list_events(self) -> List[CalendarEvent]:
        rows = self.store.select(TABLE_EVENTS, order=Order("date", ascending=True))
        names = self.user_names() if rows else {}
        return [CalendarEvent.from_row(row, names) for row in rows]

    def create_event(self, event: CalendarEvent) -> CalendarEvent:
        return CalendarEvent.from_row(self.store.insert(TABLE_EVENTS, event.to_row()))

    def update_event(self, event_id: str, changes: Mapping) -> CalendarEvent:
        return CalendarEvent.from_row(
            self._update_by_id(TABLE_EVENTS, event_id, CalendarEvent.wire_changes(changes))
        )

    def delete_event(self, event_id: str) -> None:
        self._delete_by_id(TABLE_EVENTS, event_id)

    # ------------------------------------------------------------------
    # transactions
    def list_transactions(self) -> List[Transaction]:
        rows = self.store.select(TABLE_TRANSACTIONS, order=Order("created_at", ascending=False))
        return [Transaction.from_row(row) for row in rows]

    def create_transaction(self, transaction: Transaction) -> Transaction:
        if transaction.status is None:
            transaction.status = default_transaction_status(transaction.type)
        return Transaction.from_row(self.store.insert(TABLE_TRANSACTIONS, transaction.to_row()))

    def update_transaction(self, transaction_id: str, changes: Mapping) -> Transaction:
        return Transaction.from_row(
            self._update_by_id(TABLE_TRANSACTIONS, transaction_id, Transaction.wire_changes(changes))
        )

    def delete_transaction(self, transaction_id: str) -> None:
        self._delete_by_id(TABLE_TRANSACTIONS, transaction_id)

    # ------------------------------------------------------------------
    # notifications
    def list_notifications(self, user_id: str) -> List[Notification]:
        rows = self.store.select(
            TABLE_NOTIFICATIONS,
            filters=[eq("user_id", user_id)],
            order=Order("created_at", ascending=False),
        )
        return [Notification.from_row(row) for row in rows]

    def create_notification(self, notification: Notification) -> Notification:
        return Notification.from_row(self.store.insert(TABLE_NOTIFICATIONS, notification.to_row()))

    def find_recent_notification(
        self,
        user_id: str,
        task_id: str,
        notification_type,
        now: datetime,
        window: timedelta = DEDUP_WINDOW,
    ) -> Optional[Notification]:
        """Newest notification for (user, task, type) created after ``now - window``."""
        rows = self.store.select(
            TABLE_NOTIFICATIONS,
            columns="id,user_id,task_id,type,title,is_read,created_at",
            filters=[
                eq("user_id", user_id),
                eq("task_id", task_id),
                eq("type", getattr(notification_type, "value", notification_type)),
                gte("created_at", to_iso(now - window)),
            ],
            order=Order("created_at", ascending=False),
            limit=1,
        )
        return Notification.from_row(rows[0]) if rows else None

    def mark_notification_read(self, notification_id: str) -> None:
        self._update_by_id(TABLE_NOTIFICATIONS, notification_id, {"is_read": True})

    def mark_all_notifications_read(self, user_id: str) -> int:
        rows = self.store.update(
            TABLE_NOTIFICATIONS,
            {"is_read": True},
            [eq("user_id", user_id), eq("is_read", False)],
        )
        return len(rows)

    def delete_notification(self, notification_id: str) -> None:
        self._delete_by_id(TABLE_NOTIFICATIONS, notification_id)
