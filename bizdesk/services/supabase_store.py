"""Store, auth and storage backends over a hosted Supabase project."""

import logging
import threading
import time
from typing import List, Optional, Sequence

from bizdesk.models.entities import AuthSession, AuthUser
from bizdesk.services.realtime import DELETE, INSERT, UPDATE, ChangeFeed
from bizdesk.services.store import (
    DUPLICATE_KEY_CODE,
    SIGNED_IN,
    SIGNED_OUT,
    TOKEN_REFRESHED,
    AuthError,
    AuthStateEmitter,
    DuplicateKeyError,
    Filter,
    Order,
    StoreError,
)
from integrations.supabase import SupabaseAPIError, SupabaseClient, encode_in

logger = logging.getLogger(__name__)

# Refresh a little before the token actually expires.
REFRESH_MARGIN_SECONDS = 60


def _render(value) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(getattr(value, "value", value))


def build_params(
    filters: Sequence[Filter] = (),
    *,
    columns: Optional[str] = None,
    order: Optional[Order] = None,
    limit: Optional[int] = None,
) -> list:
    """Translate filters into PostgREST query parameters."""
    params = []
    if columns:
        params.append(("select", columns))
    for flt in filters:
        if flt.op == "in":
            params.append((flt.column, encode_in(_render(v) for v in flt.value)))
        elif flt.op == "is" or (flt.op == "eq" and flt.value is None):
            params.append((flt.column, f"is.{_render(flt.value)}"))
        elif flt.op == "neq" and flt.value is None:
            params.append((flt.column, "not.is.null"))
        else:
            params.append((flt.column, f"{flt.op}.{_render(flt.value)}"))
    if order is not None:
        params.append(("order", f"{order.column}.{'asc' if order.ascending else 'desc'}"))
    if limit is not None:
        params.append(("limit", str(limit)))
    return params


def translate_error(exc: SupabaseAPIError) -> StoreError:
    """Map a platform error onto the store taxonomy."""
    if exc.code == DUPLICATE_KEY_CODE:
        return DuplicateKeyError(exc.message, code=exc.code, status=exc.status)
    if exc.status in (401, 403) and exc.code in (None, "PGRST301", "PGRST302", "401", "403"):
        return AuthError(exc.message, code=exc.code, status=exc.status)
    return StoreError(exc.message, code=exc.code, status=exc.status)


class SupabaseStore:
    """Row CRUD through PostgREST; writes are echoed on the local change feed."""

    def __init__(self, client: SupabaseClient, feed: Optional[ChangeFeed] = None) -> None:
        self.client = client
        self.feed = feed

    def _publish(self, table: str, event_type: str, record=None, old_record=None) -> None:
        if self.feed is not None:
            self.feed.publish(table, event_type, record, old_record)

    def select(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Sequence[Filter] = (),
        order: Optional[Order] = None,
        limit: Optional[int] = None,
    ) -> List[dict]:
        params = build_params(filters, columns=columns, order=order, limit=limit)
        try:
            return self.client.select(table, params)
        except SupabaseAPIError as exc:
            raise translate_error(exc) from exc

    def insert(self, table: str, row: dict) -> dict:
        try:
            created = self.client.insert(table, row)
        except SupabaseAPIError as exc:
            raise translate_error(exc) from exc
        if not created:
            # Row-level security may hide the inserted row from the writer.
            raise StoreError(f"insert into {table} returned no row", status=204)
        record = created[0]
        self._publish(table, INSERT, record)
        return record

    def update(self, table: str, values: dict, filters: Sequence[Filter]) -> List[dict]:
        try:
            rows = self.client.update(table, values, build_params(filters))
        except SupabaseAPIError as exc:
            raise translate_error(exc) from exc
        for record in rows:
            self._publish(table, UPDATE, record)
        return rows

    def delete(self, table: str, filters: Sequence[Filter]) -> List[dict]:
        if not filters:
            raise StoreError("DELETE requires a WHERE clause", code="21000", status=400)
        try:
            rows = self.client.delete(table, build_params(filters))
        except SupabaseAPIError as exc:
            raise translate_error(exc) from exc
        for record in rows:
            self._publish(table, DELETE, None, record)
        return rows


class SupabaseAuth(AuthStateEmitter):
    """GoTrue session handling for one browser session."""

    def __init__(self, client: SupabaseClient, session: Optional[AuthSession] = None) -> None:
        super().__init__()
        self.client = client
        self._session = session
        self._lock = threading.Lock()
        if session is not None:
            client.set_access_token(session.access_token)

    @property
    def access_token(self) -> Optional[str]:
        return self._session.access_token if self._session else None

    def _store_session(self, session: Optional[AuthSession]) -> None:
        with self._lock:
            self._session = session
        self.client.set_access_token(session.access_token if session else None)

    def get_session(self) -> Optional[AuthSession]:
        session = self._session
        if session is None:
            return None
        expires_at = session.expires_at
        if expires_at and expires_at - REFRESH_MARGIN_SECONDS <= time.time():
            if not session.refresh_token:
                self._store_session(None)
                return None
            try:
                payload = self.client.refresh_session(session.refresh_token)
            except SupabaseAPIError as exc:
                logger.warning("Session refresh failed: %s", exc)
                self._store_session(None)
                return None
            session = AuthSession.from_payload(payload)
            self._store_session(session)
            self._emit(TOKEN_REFRESHED, session)
        return session

    def get_user(self) -> Optional[AuthUser]:
        if self.get_session() is None:
            return None
        try:
            data = self.client.get_user()
        except SupabaseAPIError as exc:
            raise AuthError(exc.message, code=exc.code, status=exc.status) from exc
        return AuthUser.from_payload(data) if data else None

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        try:
            payload = self.client.sign_in_with_password(email, password)
        except SupabaseAPIError as exc:
            raise AuthError(exc.message, code=exc.code, status=exc.status) from exc
        session = AuthSession.from_payload(payload)
        self._store_session(session)
        self._emit(SIGNED_IN, session)
        return session

    def sign_up(self, email: str, password: str) -> Optional[AuthSession]:
        """Register; returns ``None`` when the project requires email confirmation."""
        try:
            payload = self.client.sign_up(email, password)
        except SupabaseAPIError as exc:
            raise AuthError(exc.message, code=exc.code, status=exc.status) from exc
        if not payload.get("access_token"):
            return None
        session = AuthSession.from_payload(payload)
        self._store_session(session)
        self._emit(SIGNED_IN, session)
        return session

    def oauth_authorize_url(self, provider: str, redirect_to: Optional[str] = None) -> str:
        return self.client.authorize_url(provider, redirect_to)

    def reset_password_for_email(self, email: str, redirect_to: Optional[str] = None) -> None:
        try:
            self.client.recover(email, redirect_to)
        except SupabaseAPIError as exc:
            raise AuthError(exc.message, code=exc.code, status=exc.status) from exc

    def sign_out(self) -> None:
        try:
            self.client.sign_out()
        except SupabaseAPIError as exc:
            # The local session is dropped regardless.
            logger.warning("Remote sign-out failed: %s", exc)
        self._store_session(None)
        self._emit(SIGNED_OUT, None)

    def forget_session(self) -> None:
        self._store_session(None)


class SupabaseStorage:
    def __init__(self, client: SupabaseClient, bucket: str, cache_control: str = "3600") -> None:
        self.client = client
        self.bucket = bucket
        self.cache_control = cache_control

    def upload(self, path: str, content: bytes, content_type: str) -> None:
        try:
            self.client.upload_object(
                self.bucket,
                path,
                content,
                content_type,
                cache_control=self.cache_control,
                upsert=False,
            )
        except SupabaseAPIError as exc:
            raise translate_error(exc) from exc

    def public_url(self, path: str) -> str:
        return self.client.public_object_url(self.bucket, path)
