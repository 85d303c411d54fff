"""
Blueprint de autenticacao.

Rotas:
    - POST /api/auth/sign-in: login por email/senha, abre um workspace
    - POST /api/auth/sign-up: cadastro; a sessao segue para onboarding
    - POST /api/auth/oauth: URL de autorizacao do provedor
    - POST /api/auth/reset-password: envia email de recuperacao
    - POST /api/auth/sign-out: encerra a sessao e o workspace
"""

import logging

from flask import Blueprint, g, jsonify

from bizdesk.controllers.routes._decorators import (
    bearer_token,
    get_platform,
    get_registry,
    json_body,
    workspace_required,
)
from bizdesk.services.store import StoreError, ValidationError

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _credentials(payload: dict) -> tuple:
    email = (payload.get("email") or "").strip()
    password = payload.get("password") or ""
    if not email or not password:
        raise ValidationError("email and password are required")
    return email, password


@auth_bp.route("/sign-in", methods=["POST"])
def sign_in():
    email, password = _credentials(json_body())
    registry = get_registry()
    workspace = registry.create()
    try:
        # SIGNED_IN drives the profile load inside the orchestrator.
        workspace.auth.sign_in_with_password(email, password)
    except (StoreError, ValidationError):
        workspace.close()
        raise
    token = registry.register(workspace)
    return jsonify({"token": token, "session": workspace.session.to_dict()})


@auth_bp.route("/sign-up", methods=["POST"])
def sign_up():
    email, password = _credentials(json_body())
    registry = get_registry()
    workspace = registry.create()
    try:
        session = workspace.auth.sign_up(email, password)
    except (StoreError, ValidationError):
        workspace.close()
        raise
    if session is None:
        workspace.close()
        return jsonify({"needsConfirmation": True, "needsOnboarding": True}), 202
    token = registry.register(workspace)
    return jsonify(
        {"token": token, "needsOnboarding": True, "session": workspace.session.to_dict()}
    ), 201


@auth_bp.route("/oauth", methods=["POST"])
def oauth():
    payload = json_body()
    provider = (payload.get("provider") or "google").strip()
    _, auth, _ = get_platform().connect()
    url = auth.oauth_authorize_url(provider, payload.get("redirectTo"))
    return jsonify({"url": url})


@auth_bp.route("/reset-password", methods=["POST"])
def reset_password():
    payload = json_body()
    email = (payload.get("email") or "").strip()
    if not email:
        raise ValidationError("email is required")
    _, auth, _ = get_platform().connect()
    auth.reset_password_for_email(email, payload.get("redirectTo"))
    return ("", 204)


@auth_bp.route("/sign-out", methods=["POST"])
@workspace_required
def sign_out():
    try:
        g.workspace.session.sign_out()
    finally:
        get_registry().discard(bearer_token())
    return ("", 204)
