"""
Handlers de erro centralizados para a API.

Cada exceção da taxonomia do store vira uma resposta JSON padronizada:

    - ValidationError          -> 422
    - AuthError                -> 401 (ou o status 4xx informado pelo backend)
    - PermissionDeniedError    -> 403
    - NotFoundError            -> 404
    - ConflictError / Duplicate -> 409
    - ProfileLoadTimeout       -> 502
    - StoreError               -> 502
"""

import logging

from flask import Flask, Response, jsonify
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from bizdesk.services.store import (
    AuthError,
    ConflictError,
    DuplicateKeyError,
    NotFoundError,
    PermissionDeniedError,
    ProfileLoadTimeout,
    StoreError,
    ValidationError,
)

logger = logging.getLogger(__name__)


# =============================================================================
# FUNCOES AUXILIARES
# =============================================================================

def api_error_response(error: str, status_code: int, message: str | None = None) -> tuple[Response, int]:
    """
    Cria resposta JSON padronizada para erros de API.

    Args:
        error: Tipo do erro (ex: "not_found", "forbidden").
        status_code: Codigo HTTP do erro.
        message: Mensagem descritiva opcional.
    """
    response_data = {
        "error": error,
        "status": status_code,
    }
    if message:
        response_data["message"] = message

    return jsonify(response_data), status_code


# =============================================================================
# REGISTRO DE ERROR HANDLERS
# =============================================================================

def register_error_handlers(app: Flask) -> None:

    @app.errorhandler(ValidationError)
    def handle_validation(e):
        return api_error_response("validation_error", 422, str(e))

    @app.errorhandler(PermissionDeniedError)
    def handle_permission(e):
        return api_error_response("forbidden", 403, str(e))

    @app.errorhandler(AuthError)
    def handle_auth(e):
        status = e.status if e.status in (400, 401, 403, 422) else 401
        return api_error_response("unauthorized" if status == 401 else "auth_error", status, e.message)

    @app.errorhandler(NotFoundError)
    def handle_missing_row(e):
        return api_error_response("not_found", 404, e.message)

    @app.errorhandler(ConflictError)
    def handle_conflict(e):
        return api_error_response("conflict", 409, e.message)

    @app.errorhandler(DuplicateKeyError)
    def handle_duplicate(e):
        return api_error_response("duplicate_key", 409, e.message)

    @app.errorhandler(ProfileLoadTimeout)
    def handle_profile_timeout(e):
        return api_error_response("timeout", 502, str(e))

    @app.errorhandler(StoreError)
    def handle_store_error(e):
        logger.error("Store error: %s (code=%s status=%s)", e.message, e.code, e.status)
        return api_error_response("upstream_error", 502, e.message)

    @app.errorhandler(RequestEntityTooLarge)
    def handle_file_too_large(e):
        return api_error_response("payload_too_large", 413, "Arquivo excede o tamanho máximo permitido.")

    @app.errorhandler(HTTPException)
    def handle_http(e):
        return api_error_response(e.name.lower().replace(" ", "_"), e.code or 500, e.description)

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        logger.exception("Unhandled error")
        return api_error_response("internal_error", 500, "Erro interno do servidor")
