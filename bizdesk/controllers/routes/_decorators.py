"""
Decorators de autenticacao e autorizacao para rotas.

Decorators Disponiveis:
    - workspace_required: exige um token Bearer de workspace valido
    - ready_required: exige sessao com perfil carregado (estado READY)
    - roles_required: restringe a rota a determinados cargos
"""

from functools import wraps
from typing import Optional

from flask import current_app, g, request

from bizdesk.controllers.routes._error_handlers import api_error_response
from bizdesk.services.store import PermissionDeniedError, ValidationError


# =============================================================================
# FUNCOES AUXILIARES
# =============================================================================

def get_registry():
    return current_app.extensions["bizdesk.workspaces"]


def get_platform():
    return current_app.extensions["bizdesk.platform"]


def bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return request.args.get("access_token") or None


def json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("request body must be a JSON object")
    return payload


# =============================================================================
# DECORATORS
# =============================================================================

def workspace_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        workspace = get_registry().get(bearer_token())
        if workspace is None:
            return api_error_response("unauthorized", 401, "missing or expired session token")
        g.workspace = workspace
        return view(*args, **kwargs)

    return wrapper


def ready_required(view):
    @wraps(view)
    @workspace_required
    def wrapper(*args, **kwargs):
        g.profile = g.workspace.require_ready()
        return view(*args, **kwargs)

    return wrapper


def roles_required(*roles):
    allowed = {getattr(role, "value", role) for role in roles}

    def decorator(view):
        @wraps(view)
        @ready_required
        def wrapper(*args, **kwargs):
            if g.profile.role not in allowed:
                raise PermissionDeniedError("your role cannot access this resource")
            return view(*args, **kwargs)

        return wrapper

    return decorator
