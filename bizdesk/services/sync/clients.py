"""Lead pipeline sync store with the ownership rules of the funnel."""

from typing import List, Mapping

from bizdesk.constants import (
    CLAIM_ACTIVITY,
    MANAGER_ROLES,
    STATUS_CHANGE_ACTIVITY,
    TABLE_CLIENTS,
    UserRole,
)
from bizdesk.models.entities import Client, Profile
from bizdesk.services.store import PermissionDeniedError
from bizdesk.services.sync.base import EntitySync


def can_change_status(actor: Profile, client: Client) -> bool:
    """Project managers and the current responsible move a lead through the funnel."""
    return actor.role == UserRole.PROJECT_MANAGER.value or client.responsible_id == actor.id


def can_manage(actor: Profile, client: Client) -> bool:
    """Manager roles and the current responsible edit or delete a lead."""
    return actor.role in MANAGER_ROLES or client.responsible_id == actor.id


class ClientSync(EntitySync[Client]):
    name = "clients"
    tables = (TABLE_CLIENTS,)

    def _fetch(self) -> List[Client]:
        return self.gateway.list_clients()

    def _current(self, client_id: str) -> Client:
        return self.get(client_id) or self.gateway.get_client(client_id)

    def create(self, client: Client) -> Client:
        return self._write(self.gateway.create_client, client)

    def update(self, client_id: str, changes: Mapping, actor: Profile) -> Client:
        if not can_manage(actor, self._current(client_id)):
            raise PermissionDeniedError("only managers or the lead's responsible can edit it")
        return self._write(self.gateway.update_client, client_id, changes)

    def delete(self, client_id: str, actor: Profile) -> None:
        if not can_manage(actor, self._current(client_id)):
            raise PermissionDeniedError("only managers or the lead's responsible can delete it")
        self._write(self.gateway.delete_client, client_id)

    def change_status(self, client_id: str, status, actor: Profile) -> Client:
        if not can_change_status(actor, self._current(client_id)):
            raise PermissionDeniedError("only the project manager or the lead's responsible can change its status")
        return self._write(
            self.gateway.update_client,
            client_id,
            {"status": status, "last_activity": STATUS_CHANGE_ACTIVITY},
        )

    def claim(self, client_id: str, actor: Profile) -> Client:
        """Take an unclaimed lead; raises ``ConflictError`` if someone else got it first."""
        return self._write(self.gateway.claim_client, client_id, actor.id, CLAIM_ACTIVITY)

    def unclaimed(self) -> List[Client]:
        with self._lock:
            return [client for client in self.items if client.is_unclaimed]
