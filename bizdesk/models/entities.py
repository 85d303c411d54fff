"""Entities exchanged between the gateway, the sync stores and the API.

Each entity knows three shapes:

* the *wire row* stored remotely (snake_case columns, ``from_row``/``to_row``);
* the Python object itself (snake_case attributes);
* the *API dict* served to the browser (camelCase keys, ``to_dict``), whose
  inbound counterpart is parsed by ``changes_from_payload``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from bizdesk.constants import (
    DEFAULT_AVATAR,
    DEFAULT_ROLE,
    SYSTEM_CREATOR_LABEL,
    UNASSIGNED_LABEL,
    ClientLocation,
    ClientProvenance,
    ClientStatus,
    EventType,
    NotificationType,
    TaskPriority,
    TaskStatus,
    TransactionStatus,
    TransactionType,
)
from bizdesk.services.store import ValidationError
from bizdesk.utils.datetime_utils import parse_due_date


# =============================================================================
# NORMALISERS (python value -> wire value)
# =============================================================================

def coerce_enum(enum_cls, value):
    """Return the enum member for ``value``; unknown wire values are kept verbatim."""
    if value is None or isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return value


def _enum(enum_cls, *, optional: bool = False) -> Callable[[Any, str], Any]:
    def normalise(value, name):
        if value is None or value == "":
            if optional:
                return None
            raise ValidationError(f"{name} is required")
        try:
            return enum_cls(value).value
        except ValueError:
            allowed = ", ".join(member.value for member in enum_cls)
            raise ValidationError(f"invalid {name} {value!r}; expected one of: {allowed}") from None
    return normalise


def _required_text(value, name):
    if value is None or not str(value).strip():
        raise ValidationError(f"{name} is required")
    return str(value).strip()


def _text(value, name):
    return "" if value is None else str(value)


def _optional_text(value, name):
    if value is None:
        return None
    return str(value)


def _date_text(value, name):
    if value is None or value == "":
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    text = str(value).strip()
    try:
        date.fromisoformat(text[:10])
    except ValueError:
        raise ValidationError(f"invalid {name} {value!r}; expected YYYY-MM-DD") from None
    return text


def _due_text(value, name):
    if value is None or value == "":
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    try:
        parse_due_date(value)
    except ValueError:
        raise ValidationError(f"invalid {name} {value!r}") from None
    return str(value).strip()


def _money(value, name):
    if value is None or value == "":
        raise ValidationError(f"{name} is required")
    try:
        return float(Decimal(str(value)))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"invalid {name} {value!r}") from None


def _bool(value, name):
    return bool(value)


def _string_list(value, name):
    if value is None:
        return []
    if isinstance(value, str):
        raise ValidationError(f"{name} must be a list")
    return [str(item) for item in value]


def _objectives(value, name):
    if value is None:
        return []
    return [TaskObjective.coerce(item).to_dict() for item in value]


def _plain(value):
    if isinstance(value, Enum):
        return value.value
    return value


class _WireEntity:
    """Column table driven conversions shared by the entities below."""

    COLUMNS: Dict[str, Callable[[Any, str], Any]] = {}
    API_FIELDS: Dict[str, str] = {}

    def to_row(self) -> dict:
        return {column: normalise(getattr(self, column), column) for column, normalise in self.COLUMNS.items()}

    @classmethod
    def wire_changes(cls, changes: Mapping[str, Any]) -> dict:
        """Translate attribute changes into wire columns, validating each value."""
        unknown = sorted(set(changes) - set(cls.COLUMNS))
        if unknown:
            raise ValidationError(f"unknown field(s) for {cls.__name__}: {', '.join(unknown)}")
        return {column: cls.COLUMNS[column](value, column) for column, value in changes.items()}

    @classmethod
    def changes_from_payload(cls, payload: Mapping[str, Any]) -> dict:
        """Map an API payload (camelCase) onto attribute names, ignoring read-only keys."""
        return {cls.API_FIELDS[key]: value for key, value in payload.items() if key in cls.API_FIELDS}


# =============================================================================
# AUTH / PROFILE
# =============================================================================

@dataclass(frozen=True)
class AuthUser:
    id: str
    email: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "AuthUser":
        return cls(id=str(data["id"]), email=data.get("email"))


@dataclass(frozen=True)
class AuthSession:
    access_token: str
    user: AuthUser
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "AuthSession":
        return cls(
            access_token=data["access_token"],
            user=AuthUser.from_payload(data["user"]),
            refresh_token=data.get("refresh_token"),
            expires_at=data.get("expires_at"),
        )


@dataclass
class Profile(_WireEntity):
    """Row of the ``users`` directory for one person."""

    id: str
    email: Optional[str] = None
    name: str = ""
    role: str = DEFAULT_ROLE
    avatar: str = DEFAULT_AVATAR
    created_at: Optional[str] = None

    COLUMNS = {
        "id": _required_text,
        "email": _optional_text,
        "name": _text,
        "role": _text,
        "avatar": _text,
    }
    API_FIELDS = {"name": "name", "role": "role", "avatar": "avatar"}

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Profile":
        return cls(
            id=str(row["id"]),
            email=row.get("email"),
            name=row.get("name") or "",
            role=row.get("role") or DEFAULT_ROLE,
            avatar=row.get("avatar") or DEFAULT_AVATAR,
            created_at=row.get("created_at"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "avatar": self.avatar,
        }


# =============================================================================
# TASKS
# =============================================================================

@dataclass
class TaskObjective:
    text: str
    completed: bool = False

    @classmethod
    def coerce(cls, value) -> "TaskObjective":
        if isinstance(value, TaskObjective):
            return value
        if isinstance(value, Mapping):
            return cls(text=str(value.get("text") or ""), completed=bool(value.get("completed")))
        return cls(text=str(value))

    def to_dict(self) -> dict:
        return {"text": self.text, "completed": self.completed}


@dataclass
class Task(_WireEntity):
    title: str
    project: str = ""
    status: Any = TaskStatus.BACKLOG
    priority: Any = TaskPriority.MEDIUM
    responsible_id: Optional[str] = None
    start_date: Optional[str] = None
    due_date: Optional[str] = None
    objectives: List[TaskObjective] = field(default_factory=list)
    completion_report: Optional[str] = None
    manager_feedback: Optional[str] = None
    id: Optional[str] = None
    responsible_name: str = UNASSIGNED_LABEL
    responsible_avatar: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[str] = None

    COLUMNS = {
        "title": _required_text,
        "project": _text,
        "status": _enum(TaskStatus),
        "priority": _enum(TaskPriority),
        "responsible_id": _optional_text,
        "start_date": _date_text,
        "due_date": _due_text,
        "objectives": _objectives,
        "completion_report": _optional_text,
        "manager_feedback": _optional_text,
    }
    API_FIELDS = {
        "title": "title",
        "project": "project",
        "status": "status",
        "priority": "priority",
        "responsibleId": "responsible_id",
        "startDate": "start_date",
        "dueDate": "due_date",
        "objectives": "objectives",
        "completionReport": "completion_report",
        "managerFeedback": "manager_feedback",
    }

    @classmethod
    def from_row(cls, row: Mapping[str, Any], names: Optional[Mapping[str, str]] = None) -> "Task":
        responsible_id = row.get("responsible_id")
        embedded = row.get("responsible") if isinstance(row.get("responsible"), Mapping) else {}
        name = (
            row.get("responsible_name")
            or embedded.get("name")
            or (names or {}).get(responsible_id)
            or UNASSIGNED_LABEL
        )
        return cls(
            id=row.get("id"),
            title=row.get("title") or "",
            project=row.get("project") or "",
            status=coerce_enum(TaskStatus, row.get("status")),
            priority=coerce_enum(TaskPriority, row.get("priority")),
            responsible_id=responsible_id,
            responsible_name=name,
            responsible_avatar=row.get("responsible_avatar") or embedded.get("avatar"),
            start_date=row.get("start_date"),
            due_date=row.get("due_date"),
            objectives=[TaskObjective.coerce(item) for item in row.get("objectives") or []],
            completion_report=row.get("completion_report"),
            manager_feedback=row.get("manager_feedback"),
            created_by=row.get("created_by"),
            created_at=row.get("created_at"),
        )

    @property
    def is_done(self) -> bool:
        return self.status == TaskStatus.DONE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "project": self.project,
            "status": _plain(self.status),
            "priority": _plain(self.priority),
            "responsibleId": self.responsible_id,
            "responsible": self.responsible_name,
            "responsibleAvatar": self.responsible_avatar,
            "startDate": self.start_date,
            "dueDate": self.due_date,
            "objectives": [objective.to_dict() for objective in self.objectives],
            "completionReport": self.completion_report,
            "managerFeedback": self.manager_feedback,
            "createdAt": self.created_at,
        }


# =============================================================================
# CLIENTS (LEADS)
# =============================================================================

def lead_initials(name: str) -> str:
    """First letter of each word, upper-cased, at most two letters."""
    return "".join(part[0] for part in (name or "").split() if part).upper()[:2]


@dataclass
class Client(_WireEntity):
    name: str
    email: str = ""
    phone: Optional[str] = None
    company_phone: Optional[str] = None
    internal_contact: Optional[str] = None
    internal_contact_phone: Optional[str] = None
    internal_contact_role: Optional[str] = None
    client_responsible_name: Optional[str] = None
    client_responsible_phone: Optional[str] = None
    status: Any = ClientStatus.NEW_LEAD
    responsible_id: Optional[str] = None
    services: List[str] = field(default_factory=list)
    location: Any = None
    provenance: Any = None
    last_activity: Optional[str] = None
    id: Optional[str] = None
    responsible_name: str = ""
    created_at: Optional[str] = None

    COLUMNS = {
        "name": _required_text,
        "email": _text,
        "phone": _optional_text,
        "company_phone": _optional_text,
        "internal_contact": _optional_text,
        "internal_contact_phone": _optional_text,
        "internal_contact_role": _optional_text,
        "client_responsible_name": _optional_text,
        "client_responsible_phone": _optional_text,
        "status": _enum(ClientStatus),
        "responsible_id": _optional_text,
        "services": _string_list,
        "location": _enum(ClientLocation, optional=True),
        "provenance": _enum(ClientProvenance, optional=True),
        "last_activity": _optional_text,
    }
    API_FIELDS = {
        "name": "name",
        "email": "email",
        "phone": "phone",
        "companyPhone": "company_phone",
        "internalContact": "internal_contact",
        "internalContactPhone": "internal_contact_phone",
        "internalContactRole": "internal_contact_role",
        "clientResponsibleName": "client_responsible_name",
        "clientResponsiblePhone": "client_responsible_phone",
        "status": "status",
        "responsibleId": "responsible_id",
        "services": "services",
        "location": "location",
        "provenance": "provenance",
        "lastActivity": "last_activity",
    }

    @classmethod
    def from_row(cls, row: Mapping[str, Any], names: Optional[Mapping[str, str]] = None) -> "Client":
        responsible_id = row.get("responsible_id")
        return cls(
            id=row.get("id"),
            name=row.get("name") or "",
            email=row.get("email") or "",
            phone=row.get("phone"),
            company_phone=row.get("company_phone"),
            internal_contact=row.get("internal_contact"),
            internal_contact_phone=row.get("internal_contact_phone"),
            internal_contact_role=row.get("internal_contact_role"),
            client_responsible_name=row.get("client_responsible_name"),
            client_responsible_phone=row.get("client_responsible_phone"),
            status=coerce_enum(ClientStatus, row.get("status")),
            responsible_id=responsible_id,
            responsible_name=row.get("responsible_name") or (names or {}).get(responsible_id) or "",
            services=list(row.get("services") or []),
            location=coerce_enum(ClientLocation, row.get("location")),
            provenance=coerce_enum(ClientProvenance, row.get("provenance")),
            last_activity=row.get("last_activity"),
            created_at=row.get("created_at"),
        )

    @property
    def initials(self) -> str:
        return lead_initials(self.name)

    @property
    def is_unclaimed(self) -> bool:
        return self.responsible_id is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "companyPhone": self.company_phone,
            "internalContact": self.internal_contact,
            "internalContactPhone": self.internal_contact_phone,
            "internalContactRole": self.internal_contact_role,
            "clientResponsibleName": self.client_responsible_name,
            "clientResponsiblePhone": self.client_responsible_phone,
            "status": _plain(self.status),
            "responsibleId": self.responsible_id,
            "responsible": self.responsible_name,
            "services": list(self.services),
            "location": _plain(self.location),
            "provenance": _plain(self.provenance),
            "lastActivity": self.last_activity,
            "initials": self.initials,
            "createdAt": self.created_at,
        }


# =============================================================================
# CALENDAR
# =============================================================================

@dataclass
class CalendarEvent(_WireEntity):
    title: str
    date: Optional[str] = None
    type: Any = EventType.GENERAL
    description: Optional[str] = None
    created_by: Optional[str] = None
    id: Optional[str] = None
    creator_name: str = SYSTEM_CREATOR_LABEL
    created_at: Optional[str] = None

    COLUMNS = {
        "title": _required_text,
        "date": _date_text,
        "type": _enum(EventType),
        "description": _optional_text,
        "created_by": _optional_text,
    }
    API_FIELDS = {
        "title": "title",
        "date": "date",
        "type": "type",
        "description": "description",
    }

    @classmethod
    def from_row(cls, row: Mapping[str, Any], names: Optional[Mapping[str, str]] = None) -> "CalendarEvent":
        created_by = row.get("created_by")
        embedded = row.get("creator") if isinstance(row.get("creator"), Mapping) else {}
        return cls(
            id=row.get("id"),
            title=row.get("title") or "",
            date=row.get("date"),
            type=coerce_enum(EventType, row.get("type")),
            description=row.get("description"),
            created_by=created_by,
            creator_name=embedded.get("name") or (names or {}).get(created_by) or SYSTEM_CREATOR_LABEL,
            created_at=row.get("created_at"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "date": self.date,
            "type": _plain(self.type),
            "description": self.description,
            "creatorName": self.creator_name,
        }


# =============================================================================
# FINANCE
# =============================================================================

def default_transaction_status(transaction_type) -> TransactionStatus:
    """Income is received on creation; expenses and investments are paid."""
    if coerce_enum(TransactionType, transaction_type) == TransactionType.INCOME:
        return TransactionStatus.RECEIVED
    return TransactionStatus.PAID


@dataclass
class Transaction(_WireEntity):
    description: str
    value: float
    type: Any
    date: Optional[str] = None
    category: str = ""
    status: Any = None
    id: Optional[str] = None
    created_at: Optional[str] = None

    COLUMNS = {
        "description": _required_text,
        "date": _date_text,
        "category": _text,
        "value": _money,
        "type": _enum(TransactionType),
        "status": _enum(TransactionStatus),
    }
    API_FIELDS = {
        "desc": "description",
        "date": "date",
        "cat": "category",
        "val": "value",
        "type": "type",
        "status": "status",
    }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Transaction":
        raw_value = row.get("value")
        return cls(
            id=row.get("id"),
            description=row.get("description") or "",
            date=row.get("date"),
            category=row.get("category") or "",
            value=float(raw_value) if raw_value is not None else 0.0,
            type=coerce_enum(TransactionType, row.get("type")),
            status=coerce_enum(TransactionStatus, row.get("status")),
            created_at=row.get("created_at"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "desc": self.description,
            "date": self.date,
            "cat": self.category,
            "val": self.value,
            "type": _plain(self.type),
            "status": _plain(self.status),
        }


# =============================================================================
# TEAM
# =============================================================================

@dataclass
class TeamMetrics:
    completed: int = 0
    pending: int = 0
    missed: int = 0
    objectives_met: int = 0
    total_objectives: int = 0
    kpis: List[dict] = field(default_factory=list)
    clients: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "completed": self.completed,
            "pending": self.pending,
            "missed": self.missed,
            "objectivesMet": self.objectives_met,
            "totalObjectives": self.total_objectives,
            "kpis": list(self.kpis),
            "clients": list(self.clients),
        }


@dataclass
class TeamMember:
    """Read-only projection of a directory row plus task/lead aggregates."""

    id: str
    name: str
    role: str
    email: Optional[str]
    avatar: str
    level: int
    xp: int
    badges: List[str]
    metrics: TeamMetrics

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "email": self.email,
            "avatar": self.avatar,
            "level": self.level,
            "xp": self.xp,
            "badges": list(self.badges),
            "metrics": self.metrics.to_dict(),
        }


# =============================================================================
# NOTIFICATIONS
# =============================================================================

@dataclass
class Notification(_WireEntity):
    user_id: str
    type: Any
    title: str
    task_id: Optional[str] = None
    description: Optional[str] = None
    is_read: bool = False
    id: Optional[str] = None
    created_at: Optional[str] = None

    COLUMNS = {
        "user_id": _required_text,
        "task_id": _optional_text,
        "type": _enum(NotificationType),
        "title": _required_text,
        "description": _optional_text,
        "is_read": _bool,
    }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Notification":
        return cls(
            id=row.get("id"),
            user_id=row.get("user_id"),
            task_id=row.get("task_id"),
            type=coerce_enum(NotificationType, row.get("type")),
            title=row.get("title") or "",
            description=row.get("description"),
            is_read=bool(row.get("is_read")),
            created_at=row.get("created_at"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "taskId": self.task_id,
            "type": _plain(self.type),
            "title": self.title,
            "description": self.description,
            "isRead": self.is_read,
            "createdAt": self.created_at,
        }
