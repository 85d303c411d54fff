"""
Blueprint de tarefas (kanban).

Rotas:
    - GET    /api/tasks
    - POST   /api/tasks (gestores)
    - PATCH  /api/tasks/<id>
    - DELETE /api/tasks/<id>
    - POST   /api/tasks/<id>/objectives/<index>/toggle
    - POST   /api/tasks/<id>/report
    - POST   /api/tasks/<id>/feedback (gestores)
    - POST   /api/tasks/description (texto gerado, melhor esforco)
"""

from flask import Blueprint, g, jsonify

from bizdesk.constants import MANAGER_ROLES
from bizdesk.controllers.routes._decorators import get_platform, json_body, ready_required, roles_required
from bizdesk.models.entities import Task
from bizdesk.services.store import ValidationError

tasks_bp = Blueprint("tasks", __name__, url_prefix="/api/tasks")


@tasks_bp.route("", methods=["GET"])
@ready_required
def list_tasks():
    return jsonify(g.workspace.tasks.snapshot())


@tasks_bp.route("", methods=["POST"])
@ready_required
def create_task():
    changes = Task.changes_from_payload(json_body())
    task = Task(title=changes.pop("title", ""), **changes)
    created = g.workspace.tasks.create(task, creator=g.profile)
    return jsonify(created.to_dict()), 201


@tasks_bp.route("/<task_id>", methods=["PATCH"])
@ready_required
def update_task(task_id):
    changes = Task.changes_from_payload(json_body())
    if not changes:
        raise ValidationError("nothing to update")
    return jsonify(g.workspace.tasks.update(task_id, changes, g.profile).to_dict())


@tasks_bp.route("/<task_id>", methods=["DELETE"])
@ready_required
def delete_task(task_id):
    g.workspace.tasks.delete(task_id, g.profile)
    return ("", 204)


@tasks_bp.route("/<task_id>/objectives/<int:index>/toggle", methods=["POST"])
@ready_required
def toggle_objective(task_id, index):
    return jsonify(g.workspace.tasks.toggle_objective(task_id, index, g.profile).to_dict())


@tasks_bp.route("/<task_id>/report", methods=["POST"])
@ready_required
def submit_report(task_id):
    report = json_body().get("completionReport")
    if not report:
        raise ValidationError("completionReport is required")
    return jsonify(g.workspace.tasks.submit_report(task_id, report, g.profile).to_dict())


@tasks_bp.route("/<task_id>/feedback", methods=["POST"])
@roles_required(*MANAGER_ROLES)
def give_feedback(task_id):
    feedback = json_body().get("managerFeedback")
    if not feedback:
        raise ValidationError("managerFeedback is required")
    return jsonify(g.workspace.tasks.give_feedback(task_id, feedback, g.profile).to_dict())


@tasks_bp.route("/description", methods=["POST"])
@ready_required
def generate_description():
    title = (json_body().get("title") or "").strip()
    if not title:
        raise ValidationError("title is required")
    return jsonify({"description": get_platform().insights.task_description(title)})
