"""
Blueprint de desempenho da equipe.

Rotas:
    - GET  /api/team: membros com nivel, XP, badges e KPIs
    - POST /api/team/insights: comentario gerado sobre os KPIs (melhor esforco)
"""

from flask import Blueprint, g, jsonify

from bizdesk.controllers.routes._decorators import get_platform, json_body, ready_required

team_bp = Blueprint("team", __name__, url_prefix="/api/team")


@team_bp.route("", methods=["GET"])
@ready_required
def list_team():
    return jsonify(g.workspace.team.snapshot())


@team_bp.route("/insights", methods=["POST"])
@ready_required
def team_insights():
    metrics = json_body().get("metrics")
    if metrics is None:
        metrics = [member["metrics"] | {"name": member["name"]} for member in g.workspace.team.snapshot()["items"]]
    return jsonify({"insights": get_platform().insights.project_insights(metrics)})
