"""
Blueprint da caixa de notificacoes do utilizador.

Rotas:
    - GET    /api/notifications
    - POST   /api/notifications/<id>/read
    - POST   /api/notifications/read-all
    - DELETE /api/notifications/<id>
"""

from flask import Blueprint, g, jsonify

from bizdesk.controllers.routes._decorators import ready_required

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.route("", methods=["GET"])
@ready_required
def list_notifications():
    return jsonify(g.workspace.notifications.snapshot())


@notifications_bp.route("/<notification_id>/read", methods=["POST"])
@ready_required
def mark_read(notification_id):
    g.workspace.notifications.mark_read(notification_id)
    return jsonify(g.workspace.notifications.snapshot())


@notifications_bp.route("/read-all", methods=["POST"])
@ready_required
def mark_all_read():
    g.workspace.notifications.mark_all_read()
    return jsonify(g.workspace.notifications.snapshot())


@notifications_bp.route("/<notification_id>", methods=["DELETE"])
@ready_required
def delete_notification(notification_id):
    g.workspace.notifications.delete(notification_id)
    return ("", 204)
