"""
Blueprint para health checks.

Rotas:
    - GET /ping: keep-alive leve, 204 com token valido, 401 sem
    - GET /api/health: backend em uso, sessoes abertas e estado do scheduler
"""

from flask import Blueprint, jsonify

from bizdesk.controllers.routes._decorators import bearer_token, get_platform, get_registry
from bizdesk.scheduler import scheduler

health_bp = Blueprint("health", __name__)


@health_bp.route("/ping")
def ping():
    if get_registry().get(bearer_token()) is None:
        return ("", 401)
    return ("", 204)


@health_bp.route("/api/health")
def health():
    platform = get_platform()
    return jsonify(
        {
            "status": "ok",
            "backend": "supabase" if platform.hosted else "local",
            "workspaces": len(get_registry()),
            "scheduler": scheduler.running,
            "subscriptions": platform.feed.subscriber_count(),
        }
    )
