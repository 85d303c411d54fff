"""
Blueprint de sessao e perfil.

Rotas:
    - GET  /api/session: estado do orquestrador
    - POST /api/session/refresh: rele a sessao e o perfil
    - POST /api/session/onboarding: cria o perfil (nome, cargo, avatar)
    - POST /api/session/reset: saida de emergencia, limpa o estado local
    - GET/PATCH /api/profile: perfil do utilizador
    - POST /api/profile/avatar: upload de avatar (multipart, campo ``file``)
"""

from flask import Blueprint, g, jsonify, request

from bizdesk.controllers.routes._decorators import (
    bearer_token,
    get_registry,
    json_body,
    ready_required,
    workspace_required,
)
from bizdesk.models.entities import Profile
from bizdesk.services.avatars import upload_avatar
from bizdesk.services.store import ValidationError

session_bp = Blueprint("session", __name__)


@session_bp.route("/api/session", methods=["GET"])
@workspace_required
def current_session():
    return jsonify(g.workspace.session.to_dict())


@session_bp.route("/api/session/refresh", methods=["POST"])
@workspace_required
def refresh_session():
    g.workspace.session.bootstrap()
    return jsonify(g.workspace.session.to_dict())


@session_bp.route("/api/session/onboarding", methods=["POST"])
@workspace_required
def onboarding():
    payload = json_body()
    profile = g.workspace.session.complete_onboarding(
        payload.get("name"),
        payload.get("role"),
        payload.get("avatar"),
    )
    return jsonify({"profile": profile.to_dict(), "session": g.workspace.session.to_dict()}), 201


@session_bp.route("/api/session/reset", methods=["POST"])
@workspace_required
def reset_session():
    try:
        g.workspace.session.reset()
    finally:
        get_registry().discard(bearer_token())
    return ("", 204)


@session_bp.route("/api/profile", methods=["GET"])
@ready_required
def get_profile():
    return jsonify(g.profile.to_dict())


@session_bp.route("/api/profile", methods=["PATCH"])
@ready_required
def update_profile():
    changes = Profile.changes_from_payload(json_body())
    if not changes:
        raise ValidationError("nothing to update")
    profile = g.workspace.session.update_profile(changes)
    return jsonify(profile.to_dict())


@session_bp.route("/api/profile/avatar", methods=["POST"])
@ready_required
def upload_profile_avatar():
    upload = request.files.get("file")
    if upload is None:
        raise ValidationError("file is required")
    content = upload.read()
    url = upload_avatar(
        g.workspace.storage,
        g.profile.id,
        content,
        upload.mimetype,
        upload.filename,
    )
    profile = g.workspace.session.update_profile({"avatar": url})
    return jsonify({"url": url, "profile": profile.to_dict()})
