"""
Local SQLite backend implementing the store, auth and storage contracts.

Usado quando nenhum projeto hospedado está configurado (modo fallback) e pela
suíte de testes. As tabelas espelham o esquema remoto; as duas views
pré-juntadas (``tasks_with_users`` e ``clients_with_users``) são montadas como
selects com LEFT JOIN em ``users``.
"""

import logging
import os
import secrets
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    create_engine,
    select,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool
from werkzeug.security import check_password_hash, generate_password_hash

from bizdesk.constants import (
    TABLE_CLIENTS,
    TABLE_EVENTS,
    TABLE_NOTIFICATIONS,
    TABLE_TASKS,
    TABLE_TRANSACTIONS,
    TABLE_USERS,
    VIEW_CLIENTS_WITH_USERS,
    VIEW_TASKS_WITH_USERS,
)
from bizdesk.models.entities import AuthSession, AuthUser
from bizdesk.services.realtime import DELETE, INSERT, UPDATE, ChangeFeed
from bizdesk.services.store import (
    DUPLICATE_KEY_CODE,
    SIGNED_IN,
    SIGNED_OUT,
    AuthError,
    AuthStateEmitter,
    DuplicateKeyError,
    Filter,
    Order,
    StoreError,
    ValidationError,
)
from bizdesk.utils.datetime_utils import parse_timestamp, to_iso, utc_now

logger = logging.getLogger(__name__)

SESSION_TTL = timedelta(hours=12)


def _new_id() -> str:
    return str(uuid.uuid4())


def _utc_naive() -> datetime:
    return utc_now().replace(tzinfo=None)


metadata = MetaData()

users = Table(
    TABLE_USERS,
    metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), unique=True),
    Column("name", String(255), nullable=False, default=""),
    Column("role", String(120)),
    Column("avatar", Text),
    Column("created_at", DateTime, nullable=False, default=_utc_naive),
)

tasks = Table(
    TABLE_TASKS,
    metadata,
    Column("id", String(36), primary_key=True, default=_new_id),
    Column("title", String(255), nullable=False),
    Column("project", String(255), default=""),
    Column("status", String(40), nullable=False),
    Column("priority", String(40), nullable=False),
    Column("responsible_id", String(36), index=True),
    Column("start_date", String(40)),
    Column("due_date", String(40)),
    Column("objectives", JSON, default=list),
    Column("completion_report", Text),
    Column("manager_feedback", Text),
    Column("created_by", String(36)),
    Column("created_at", DateTime, nullable=False, default=_utc_naive),
)

clients = Table(
    TABLE_CLIENTS,
    metadata,
    Column("id", String(36), primary_key=True, default=_new_id),
    Column("name", String(255), nullable=False),
    Column("email", String(255), default=""),
    Column("phone", String(60)),
    Column("company_phone", String(60)),
    Column("internal_contact", String(255)),
    Column("internal_contact_phone", String(60)),
    Column("internal_contact_role", String(120)),
    Column("client_responsible_name", String(255)),
    Column("client_responsible_phone", String(60)),
    Column("status", String(60), nullable=False),
    Column("responsible_id", String(36), index=True),
    Column("services", JSON, default=list),
    Column("location", String(60)),
    Column("provenance", String(60)),
    Column("last_activity", Text),
    Column("created_at", DateTime, nullable=False, default=_utc_naive),
)

calendar_events = Table(
    TABLE_EVENTS,
    metadata,
    Column("id", String(36), primary_key=True, default=_new_id),
    Column("title", String(255), nullable=False),
    Column("date", String(40)),
    Column("type", String(40), nullable=False),
    Column("description", Text),
    Column("created_by", String(36)),
    Column("created_at", DateTime, nullable=False, default=_utc_naive),
)

transactions = Table(
    TABLE_TRANSACTIONS,
    metadata,
    Column("id", String(36), primary_key=True, default=_new_id),
    Column("description", String(255), nullable=False),
    Column("date", String(40)),
    Column("category", String(120), default=""),
    Column("value", Numeric(14, 2, asdecimal=False), nullable=False),
    Column("type", String(20), nullable=False),
    Column("status", String(20), nullable=False),
    Column("created_at", DateTime, nullable=False, default=_utc_naive),
)

notifications = Table(
    TABLE_NOTIFICATIONS,
    metadata,
    Column("id", String(36), primary_key=True, default=_new_id),
    Column("user_id", String(36), nullable=False, index=True),
    Column("task_id", String(36)),
    Column("type", String(40), nullable=False),
    Column("title", String(255), nullable=False),
    Column("description", Text),
    Column("is_read", Boolean, nullable=False, default=False),
    Column("created_at", DateTime, nullable=False, default=_utc_naive),
)

auth_credentials = Table(
    "auth_credentials",
    metadata,
    Column("user_id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("created_at", DateTime, nullable=False, default=_utc_naive),
)

auth_sessions = Table(
    "auth_sessions",
    metadata,
    Column("access_token", String(128), primary_key=True),
    Column("refresh_token", String(128), unique=True),
    Column("user_id", String(36), nullable=False, index=True),
    Column("expires_at", DateTime, nullable=False),
    Column("created_at", DateTime, nullable=False, default=_utc_naive),
)

WRITABLE_TABLES = {
    table.name: table
    for table in (users, tasks, clients, calendar_events, transactions, notifications)
}


def _build_views() -> Dict[str, object]:
    task_owner = users.alias("responsible")
    client_owner = users.alias("client_owner")
    return {
        VIEW_TASKS_WITH_USERS: select(
            tasks,
            task_owner.c.name.label("responsible_name"),
            task_owner.c.avatar.label("responsible_avatar"),
        )
        .select_from(tasks.outerjoin(task_owner, tasks.c.responsible_id == task_owner.c.id))
        .subquery(VIEW_TASKS_WITH_USERS),
        VIEW_CLIENTS_WITH_USERS: select(
            clients,
            client_owner.c.name.label("responsible_name"),
        )
        .select_from(clients.outerjoin(client_owner, clients.c.responsible_id == client_owner.c.id))
        .subquery(VIEW_CLIENTS_WITH_USERS),
    }


VIEWS = _build_views()


def create_store_engine(database_url: str):
    """Engine for ``database_url``; in-memory SQLite shares one connection."""
    options = {"future": True}
    if database_url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
            options["poolclass"] = StaticPool
        else:
            path = database_url.split("///", 1)[-1]
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)
    else:
        options["pool_pre_ping"] = True
        options["pool_recycle"] = 1800
    return create_engine(database_url, **options)


def _serialise(row) -> dict:
    data = dict(row._mapping)
    for key, value in data.items():
        if isinstance(value, datetime):
            data[key] = to_iso(value)
    return data


class LocalStore:
    """Store contract over SQLAlchemy Core."""

    def __init__(self, engine, feed: Optional[ChangeFeed] = None) -> None:
        self.engine = engine
        self.feed = feed
        metadata.create_all(engine)

    @classmethod
    def from_url(cls, database_url: str, feed: Optional[ChangeFeed] = None) -> "LocalStore":
        return cls(create_store_engine(database_url), feed=feed)

    # ------------------------------------------------------------------
    # helpers
    def _source(self, name: str, *, writable: bool = False):
        if name in WRITABLE_TABLES:
            return WRITABLE_TABLES[name]
        if name in VIEWS:
            if writable:
                raise StoreError(f'cannot write to view "{name}"', code="42809", status=400)
            return VIEWS[name]
        raise StoreError(f'relation "{name}" does not exist', code="42P01", status=404)

    @staticmethod
    def _column(source, name: str):
        try:
            return source.c[name]
        except KeyError:
            raise StoreError(f'column "{name}" does not exist', code="42703", status=400) from None

    @staticmethod
    def _coerce(column, value):
        if isinstance(column.type, DateTime) and value is not None and not isinstance(value, datetime):
            value = parse_timestamp(value)
        if isinstance(value, datetime):
            if value.tzinfo is not None:
                value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def _clause(self, source, flt: Filter):
        column = self._column(source, flt.column)
        if flt.op == "in":
            return column.in_([self._coerce(column, v) for v in flt.value])
        value = self._coerce(column, flt.value)
        if flt.op == "is":
            return column.is_(value)
        if flt.op == "eq":
            return column.is_(None) if value is None else column == value
        if flt.op == "neq":
            return column.is_not(None) if value is None else column != value
        if flt.op == "gt":
            return column > value
        if flt.op == "gte":
            return column >= value
        if flt.op == "lt":
            return column < value
        return column <= value

    def _where(self, statement, source, filters: Sequence[Filter]):
        for flt in filters:
            statement = statement.where(self._clause(source, flt))
        return statement

    def _clean_values(self, table, values: dict) -> dict:
        clean = {}
        for key, value in values.items():
            column = self._column(table, key)
            clean[key] = self._coerce(column, value)
        return clean

    def _publish(self, table: str, event_type: str, record=None, old_record=None) -> None:
        if self.feed is not None:
            self.feed.publish(table, event_type, record, old_record)

    # ------------------------------------------------------------------
    # contract
    def select(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Sequence[Filter] = (),
        order: Optional[Order] = None,
        limit: Optional[int] = None,
    ) -> List[dict]:
        source = self._source(table)
        if columns and columns.strip() != "*":
            wanted = [self._column(source, name.strip()) for name in columns.split(",") if name.strip()]
            statement = select(*wanted)
        else:
            statement = select(source)
        statement = self._where(statement, source, filters)
        if order is not None:
            column = self._column(source, order.column)
            statement = statement.order_by(column.asc() if order.ascending else column.desc())
        if limit is not None:
            statement = statement.limit(limit)
        try:
            with self.engine.connect() as conn:
                return [_serialise(row) for row in conn.execute(statement)]
        except SQLAlchemyError as exc:
            logger.error("Local select on %s failed: %s", table, exc)
            raise StoreError(str(exc)) from exc

    def insert(self, table: str, row: dict) -> dict:
        target = self._source(table, writable=True)
        values = self._clean_values(target, row)
        pk = list(target.primary_key.columns)[0]
        if values.get(pk.name) is None:
            if pk.default is None:
                raise StoreError(f'null value in column "{pk.name}"', code="23502", status=400)
            values[pk.name] = _new_id()
        try:
            with self.engine.begin() as conn:
                conn.execute(target.insert().values(**values))
                created = conn.execute(select(target).where(pk == values[pk.name])).one()
        except IntegrityError as exc:
            message = str(exc.orig) if exc.orig is not None else str(exc)
            if "UNIQUE" in message.upper() or "PRIMARY KEY" in message.upper():
                raise DuplicateKeyError(
                    f"duplicate key value violates unique constraint on {table}",
                    code=DUPLICATE_KEY_CODE,
                    status=409,
                ) from exc
            raise StoreError(message, code="23502", status=400) from exc
        except SQLAlchemyError as exc:
            logger.error("Local insert on %s failed: %s", table, exc)
            raise StoreError(str(exc)) from exc

        record = _serialise(created)
        self._publish(table, INSERT, record)
        return record

    def update(self, table: str, values: dict, filters: Sequence[Filter]) -> List[dict]:
        target = self._source(table, writable=True)
        clean = self._clean_values(target, values)
        pk = list(target.primary_key.columns)[0]
        try:
            with self.engine.begin() as conn:
                before = [
                    _serialise(row)
                    for row in conn.execute(self._where(select(target), target, filters))
                ]
                if not before:
                    return []
                ids = [row[pk.name] for row in before]
                # Conditions are re-applied so a concurrent writer cannot be overwritten.
                statement = self._where(target.update(), target, filters).where(pk.in_(ids)).values(**clean)
                conn.execute(statement)
                after = [
                    _serialise(row)
                    for row in conn.execute(select(target).where(pk.in_(ids)))
                ]
        except IntegrityError as exc:
            raise DuplicateKeyError(str(exc.orig), code=DUPLICATE_KEY_CODE, status=409) from exc
        except SQLAlchemyError as exc:
            logger.error("Local update on %s failed: %s", table, exc)
            raise StoreError(str(exc)) from exc

        previous = {row[pk.name]: row for row in before}
        for record in after:
            self._publish(table, UPDATE, record, previous.get(record[pk.name]))
        return after

    def delete(self, table: str, filters: Sequence[Filter]) -> List[dict]:
        target = self._source(table, writable=True)
        if not filters:
            raise StoreError("DELETE requires a WHERE clause", code="21000", status=400)
        try:
            with self.engine.begin() as conn:
                removed = [
                    _serialise(row)
                    for row in conn.execute(self._where(select(target), target, filters))
                ]
                if removed:
                    conn.execute(self._where(target.delete(), target, filters))
        except SQLAlchemyError as exc:
            logger.error("Local delete on %s failed: %s", table, exc)
            raise StoreError(str(exc)) from exc

        for record in removed:
            self._publish(table, DELETE, None, record)
        return removed


# =============================================================================
# AUTH
# =============================================================================

class LocalAuth(AuthStateEmitter):
    """
    Password auth over the ``auth_credentials``/``auth_sessions`` tables.

    Uma instância representa o cliente de um navegador: guarda no máximo uma
    sessão (o token de acesso) e emite os eventos de mudança de estado.
    """

    def __init__(self, store: LocalStore, access_token: Optional[str] = None) -> None:
        super().__init__()
        self.store = store
        self._access_token = access_token
        self._lock = threading.Lock()

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    def _load_session(self, token: str) -> Optional[AuthSession]:
        statement = (
            select(auth_sessions, auth_credentials.c.email)
            .select_from(auth_sessions.join(auth_credentials, auth_sessions.c.user_id == auth_credentials.c.user_id))
            .where(auth_sessions.c.access_token == token)
        )
        try:
            with self.store.engine.connect() as conn:
                row = conn.execute(statement).first()
        except SQLAlchemyError as exc:
            raise AuthError(str(exc)) from exc
        if row is None:
            return None
        if row.expires_at <= _utc_naive():
            return None
        return AuthSession(
            access_token=row.access_token,
            refresh_token=row.refresh_token,
            expires_at=int(row.expires_at.replace(tzinfo=timezone.utc).timestamp()),
            user=AuthUser(id=row.user_id, email=row.email),
        )

    def _open_session(self, user_id: str, email: str) -> AuthSession:
        expires_at = _utc_naive() + SESSION_TTL
        values = {
            "access_token": secrets.token_urlsafe(32),
            "refresh_token": secrets.token_urlsafe(32),
            "user_id": user_id,
            "expires_at": expires_at,
        }
        with self.store.engine.begin() as conn:
            conn.execute(auth_sessions.insert().values(**values))
        with self._lock:
            self._access_token = values["access_token"]
        return AuthSession(
            access_token=values["access_token"],
            refresh_token=values["refresh_token"],
            expires_at=int(expires_at.replace(tzinfo=timezone.utc).timestamp()),
            user=AuthUser(id=user_id, email=email),
        )

    def get_session(self) -> Optional[AuthSession]:
        token = self._access_token
        if not token:
            return None
        return self._load_session(token)

    def get_user(self) -> Optional[AuthUser]:
        session = self.get_session()
        return session.user if session else None

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        email = (email or "").strip().lower()
        with self.store.engine.connect() as conn:
            row = conn.execute(select(auth_credentials).where(auth_credentials.c.email == email)).first()
        if row is None or not check_password_hash(row.password_hash, password or ""):
            raise AuthError("Invalid login credentials", code="invalid_credentials", status=400)
        session = self._open_session(row.user_id, row.email)
        logger.info("Local sign-in", extra={"user_id": row.user_id})
        self._emit(SIGNED_IN, session)
        return session

    def sign_up(self, email: str, password: str) -> Optional[AuthSession]:
        email = (email or "").strip().lower()
        if not email or "@" not in email:
            raise ValidationError("a valid email is required")
        if len(password or "") < 6:
            raise ValidationError("password must have at least 6 characters")
        user_id = _new_id()
        try:
            with self.store.engine.begin() as conn:
                conn.execute(
                    auth_credentials.insert().values(
                        user_id=user_id,
                        email=email,
                        password_hash=generate_password_hash(password),
                    )
                )
        except IntegrityError as exc:
            raise AuthError("User already registered", code="user_already_exists", status=422) from exc
        session = self._open_session(user_id, email)
        self._emit(SIGNED_IN, session)
        return session

    def oauth_authorize_url(self, provider: str, redirect_to: Optional[str] = None) -> str:
        raise AuthError(
            f"OAuth provider {provider!r} requires a hosted project",
            code="provider_disabled",
            status=400,
        )

    def reset_password_for_email(self, email: str, redirect_to: Optional[str] = None) -> None:
        # No mail transport in fallback mode.
        logger.info("Password reset requested for %s (local mode, no email sent)", email)

    def sign_out(self) -> None:
        token = self._access_token
        if token:
            with self.store.engine.begin() as conn:
                conn.execute(auth_sessions.delete().where(auth_sessions.c.access_token == token))
        self.forget_session()
        self._emit(SIGNED_OUT, None)

    def forget_session(self) -> None:
        with self._lock:
            self._access_token = None


# =============================================================================
# STORAGE
# =============================================================================

class LocalObjectStorage:
    """Uploaded objects written below ``root_dir``, served by ``/uploads``."""

    def __init__(self, root_dir: str, base_url: str = "/uploads") -> None:
        self.root_dir = root_dir
        self.base_url = base_url.rstrip("/")

    def _path(self, path: str) -> str:
        full = os.path.abspath(os.path.join(self.root_dir, path))
        if not full.startswith(os.path.abspath(self.root_dir) + os.sep):
            raise ValidationError(f"invalid object path {path!r}")
        return full

    def upload(self, path: str, content: bytes, content_type: str) -> None:
        full = self._path(path)
        if os.path.exists(full):
            raise DuplicateKeyError("The resource already exists", code="Duplicate", status=409)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        with open(full, "wb") as handle:
            handle.write(content)

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{path}"
