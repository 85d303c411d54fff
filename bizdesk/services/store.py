"""Contract shared by the hosted and local store backends.

A *store* exposes row-level CRUD per table (and two read-only joined views),
an *auth backend* exposes session handling, and *object storage* keeps
uploaded avatars. :mod:`bizdesk.services.supabase_store` talks to a hosted
project; :mod:`bizdesk.services.local_store` keeps everything in SQLite.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Protocol, Sequence

logger = logging.getLogger(__name__)

DUPLICATE_KEY_CODE = "23505"

# Auth state change events, same names the platform emits.
SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"
USER_UPDATED = "USER_UPDATED"


# =============================================================================
# ERRORS
# =============================================================================

class StoreError(RuntimeError):
    """A remote call failed."""

    def __init__(self, message: str, *, code: Optional[str] = None, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status


class DuplicateKeyError(StoreError):
    """Unique-key violation on insert."""


class AuthError(StoreError):
    """Missing/expired session or rejected credentials."""


class ConflictError(StoreError):
    """A conditional write matched no row."""


class NotFoundError(StoreError):
    """The addressed row does not exist (or is not visible)."""


class PermissionDeniedError(RuntimeError):
    """A role or ownership rule refused the action."""


class ValidationError(ValueError):
    """Input rejected before reaching the store."""


class ProfileLoadTimeout(TimeoutError):
    """Profile fetch exceeded its hard timeout."""


# =============================================================================
# QUERY HELPERS
# =============================================================================

FILTER_OPS = ("eq", "neq", "gt", "gte", "lt", "lte", "is", "in")


@dataclass(frozen=True)
class Filter:
    column: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in FILTER_OPS:
            raise ValueError(f"unsupported filter operator: {self.op}")


@dataclass(frozen=True)
class Order:
    column: str
    ascending: bool = True


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def neq(column: str, value: Any) -> Filter:
    return Filter(column, "neq", value)


def gte(column: str, value: Any) -> Filter:
    return Filter(column, "gte", value)


def lte(column: str, value: Any) -> Filter:
    return Filter(column, "lte", value)


def is_null(column: str) -> Filter:
    return Filter(column, "is", None)


def not_null(column: str) -> Filter:
    return Filter(column, "neq", None)


def in_(column: str, values: Iterable[Any]) -> Filter:
    return Filter(column, "in", tuple(values))


# =============================================================================
# COLLABORATOR PROTOCOLS
# =============================================================================

class Store(Protocol):
    def select(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Sequence[Filter] = (),
        order: Optional[Order] = None,
        limit: Optional[int] = None,
    ) -> List[dict]: ...

    def insert(self, table: str, row: dict) -> dict: ...

    def update(self, table: str, values: dict, filters: Sequence[Filter]) -> List[dict]: ...

    def delete(self, table: str, filters: Sequence[Filter]) -> List[dict]: ...


class AuthBackend(Protocol):
    def get_session(self): ...

    def get_user(self): ...

    def sign_in_with_password(self, email: str, password: str): ...

    def sign_up(self, email: str, password: str): ...

    def oauth_authorize_url(self, provider: str, redirect_to: Optional[str] = None) -> str: ...

    def reset_password_for_email(self, email: str, redirect_to: Optional[str] = None) -> None: ...

    def sign_out(self) -> None: ...

    def forget_session(self) -> None: ...

    def on_auth_state_change(self, callback: Callable) -> Callable[[], None]: ...


class ObjectStorage(Protocol):
    def upload(self, path: str, content: bytes, content_type: str) -> None: ...

    def public_url(self, path: str) -> str: ...


class AuthStateEmitter:
    """Listener bookkeeping for ``on_auth_state_change``."""

    def __init__(self) -> None:
        self._listeners: List[Callable] = []
        self._listeners_lock = threading.Lock()

    def on_auth_state_change(self, callback: Callable) -> Callable[[], None]:
        with self._listeners_lock:
            self._listeners.append(callback)

        def unsubscribe() -> None:
            with self._listeners_lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def _emit(self, event: str, session) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event, session)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Auth listener failed for %s", event)
