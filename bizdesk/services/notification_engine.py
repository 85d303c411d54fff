"""
Deadline notification engine.

Varre periodicamente as tarefas abertas e grava, no máximo, uma notificação
por (utilizador, tarefa, categoria) em cada janela de 24 horas.

Categorias:
    - ``task_overdue``: prazo já passou;
    - ``deadline_today``: vence nas próximas 24h, no mesmo dia civil;
    - ``deadline_24h``: vence nas próximas 24h, no dia seguinte.

O motor não é global: cada sessão constrói o seu e chama ``start``/``stop``.
"""

import logging
import threading
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from apscheduler.jobstores.base import JobLookupError
from apscheduler.triggers.interval import IntervalTrigger

from bizdesk.constants import DEFAULT_ASSIGNER_LABEL, NotificationType
from bizdesk.models.entities import Notification, Profile, Task
from bizdesk.services.gateway import RemoteGateway
from bizdesk.services.store import StoreError
from bizdesk.utils.datetime_utils import (
    format_date_br,
    format_time_br,
    get_timezone,
    local_date,
    now_aware,
    parse_due_date,
)

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 3600
DEADLINE_HORIZON = timedelta(hours=24)


def classify_deadline(due: datetime, now: datetime, tz: Optional[ZoneInfo] = None) -> Optional[NotificationType]:
    """Deadline bucket for a task due at ``due``, or ``None`` when not urgent."""
    delta = due - now
    if delta < timedelta(0):
        return NotificationType.TASK_OVERDUE
    if delta <= DEADLINE_HORIZON:
        if local_date(due, tz) == local_date(now, tz):
            return NotificationType.DEADLINE_TODAY
        return NotificationType.DEADLINE_24H
    return None


def build_deadline_notification(task: Task, category: NotificationType, due: datetime, tz=None) -> Notification:
    if category == NotificationType.TASK_OVERDUE:
        title = f"Tarefa Atrasada: {task.title}"
        description = f"Esta tarefa está atrasada desde {format_date_br(due, tz)}"
    elif category == NotificationType.DEADLINE_TODAY:
        title = f"Prazo Hoje: {task.title}"
        description = f"Esta tarefa vence hoje às {format_time_br(due, tz)}"
    else:
        title = f"Prazo em 24h: {task.title}"
        description = f"Esta tarefa vence amanhã ({format_date_br(due, tz)})"
    return Notification(
        user_id=task.responsible_id,
        task_id=task.id,
        type=category,
        title=title,
        description=description,
    )


def notify_task_assignment(
    gateway: RemoteGateway,
    task: Task,
    assigned_by: Optional[Profile] = None,
) -> Optional[Notification]:
    """
    Record a ``task_assigned`` notification for the task's responsible.

    Always inserted (no de-duplication). Skipped when there is no responsible
    or the creator assigned the task to themselves. Failures are logged and
    do not affect the task that was already created.
    """
    if not task.responsible_id:
        return None
    if assigned_by is not None and assigned_by.id == task.responsible_id:
        return None

    assigner = (assigned_by.name if assigned_by else "") or DEFAULT_ASSIGNER_LABEL
    notification = Notification(
        user_id=task.responsible_id,
        task_id=task.id,
        type=NotificationType.TASK_ASSIGNED,
        title=f"Nova Tarefa Atribuída: {task.title}",
        description=f"Você foi designado para esta tarefa por {assigner}",
    )
    try:
        return gateway.create_notification(notification)
    except StoreError:
        logger.exception("Falha ao criar notificação de atribuição", extra={"task_id": task.id})
        return None


class DeadlineNotificationEngine:
    """Stopped/Running state machine driving periodic deadline scans."""

    def __init__(
        self,
        gateway: RemoteGateway,
        scheduler,
        *,
        interval_seconds: int = DEFAULT_INTERVAL_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
        tz: Optional[ZoneInfo] = None,
        job_id: Optional[str] = None,
    ) -> None:
        self.gateway = gateway
        self.scheduler = scheduler
        self.interval_seconds = interval_seconds
        self.tz = tz or get_timezone()
        self.clock = clock or (lambda: now_aware(self.tz))
        self.job_id = job_id or f"deadline-scan-{uuid.uuid4().hex[:8]}"
        self._running = False
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> bool:
        with self._lock:
            if self._running:
                logger.warning("Deadline engine %s already running", self.job_id)
                return False
            self._running = True

        logger.info("Deadline engine %s started (every %ss)", self.job_id, self.interval_seconds)
        self.scan()
        self.scheduler.add_job(
            func=self._tick,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=self.job_id,
            name="Verificação de prazos de tarefas",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        return True

    def stop(self) -> None:
        with self._lock:
            was_running = self._running
            self._running = False
        try:
            self.scheduler.remove_job(self.job_id)
        except JobLookupError:
            pass
        if was_running:
            logger.info("Deadline engine %s stopped", self.job_id)

    def _tick(self) -> None:
        if not self._running:
            return
        self.scan()

    def scan(self) -> int:
        """Run one deadline pass; returns how many notifications were written."""
        now = self.clock()
        created = 0
        try:
            tasks = self.gateway.list_deadline_candidates()
            for task in tasks:
                try:
                    due = parse_due_date(task.due_date, self.tz)
                except ValueError:
                    logger.warning("Task %s has an unreadable due date %r", task.id, task.due_date)
                    continue
                category = classify_deadline(due, now, self.tz)
                if category is None:
                    continue
                if self.gateway.find_recent_notification(task.responsible_id, task.id, category, now):
                    continue
                self.gateway.create_notification(build_deadline_notification(task, category, due, self.tz))
                created += 1
        except StoreError:
            logger.exception("Deadline scan aborted", extra={"job_id": self.job_id})
        else:
            logger.info("Deadline scan complete", extra={"job_id": self.job_id, "notifications_created": created})
        return created
