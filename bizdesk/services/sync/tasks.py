from typing import List, Mapping, Optional

from bizdesk.constants import MANAGER_ROLES, TABLE_TASKS, TaskStatus, UserRole
from bizdesk.models.entities import Profile, Task, TaskObjective
from bizdesk.services.notification_engine import notify_task_assignment
from bizdesk.services.store import PermissionDeniedError, ValidationError
from bizdesk.services.sync.base import EntitySync


def can_create(actor: Optional[Profile]) -> bool:
    """Only managers delegate new tasks."""
    return actor is not None and actor.role in MANAGER_ROLES


def can_edit(actor: Profile, task: Task) -> bool:
    return actor.role in MANAGER_ROLES or task.responsible_id == actor.id


def can_change_status(actor: Profile, task: Task) -> bool:
    return actor.role == UserRole.PROJECT_MANAGER.value or task.responsible_id == actor.id


def can_delete(actor: Profile, task: Task) -> bool:
    return actor.role in MANAGER_ROLES or task.responsible_id == actor.id


class TaskSync(EntitySync[Task]):
    """Kanban tasks, newest first, with the responsible name resolved."""

    name = "tasks"
    tables = (TABLE_TASKS,)

    def _fetch(self) -> List[Task]:
        return self.gateway.list_tasks()

    def _current(self, task_id: str) -> Task:
        return self.get(task_id) or self.gateway.get_task(task_id)

    def _check_changes(self, actor: Profile, task: Task, changes: Mapping) -> None:
        if not can_edit(actor, task):
            raise PermissionDeniedError("only managers or the task's responsible can edit it")
        if "status" in changes and not can_change_status(actor, task):
            raise PermissionDeniedError("only the project manager or the task's responsible can move it")
        if "completion_report" in changes and task.responsible_id != actor.id:
            raise PermissionDeniedError("only the task's responsible can write the completion report")
        if "manager_feedback" in changes and actor.role not in MANAGER_ROLES:
            raise PermissionDeniedError("only managers can give feedback")

    def create(self, task: Task, creator: Optional[Profile]) -> Task:
        """Insert the task, then tell its responsible about the assignment."""
        if not can_create(creator):
            raise PermissionDeniedError("only managers can create and delegate tasks")
        created = self.gateway.create_task(task, created_by=creator.id)
        notify_task_assignment(self.gateway, created, creator)
        self.refresh()
        return created

    def update(self, task_id: str, changes: Mapping, actor: Profile) -> Task:
        self._check_changes(actor, self._current(task_id), changes)
        return self._write(self.gateway.update_task, task_id, changes)

    def delete(self, task_id: str, actor: Profile) -> None:
        if not can_delete(actor, self._current(task_id)):
            raise PermissionDeniedError("only managers or the task's responsible can delete it")
        self._write(self.gateway.delete_task, task_id)

    def move(self, task_id: str, status, actor: Profile) -> Task:
        return self.update(task_id, {"status": status}, actor)

    def toggle_objective(self, task_id: str, index: int, actor: Profile) -> Task:
        task = self._current(task_id)
        objectives = [TaskObjective(o.text, o.completed) for o in task.objectives]
        if not 0 <= index < len(objectives):
            raise ValidationError(f"task {task_id} has no objective #{index}")
        objectives[index].completed = not objectives[index].completed
        return self.update(task_id, {"objectives": objectives}, actor)

    def submit_report(self, task_id: str, report: str, actor: Profile) -> Task:
        return self.update(task_id, {"completion_report": report}, actor)

    def give_feedback(self, task_id: str, feedback: str, actor: Profile) -> Task:
        return self.update(task_id, {"manager_feedback": feedback}, actor)

    def open_tasks_for(self, user_id: str) -> List[Task]:
        with self._lock:
            return [
                task for task in self.items
                if task.responsible_id == user_id and task.status != TaskStatus.DONE
            ]
