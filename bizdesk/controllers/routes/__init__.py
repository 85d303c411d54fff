"""
Rotas HTTP da aplicação.

Todas as rotas de dados vivem em blueprints (``blueprints/``) e respondem em
JSON; este módulo apenas liga os handlers de erro e os blueprints à app.
"""

from flask import Flask

from bizdesk.controllers.routes._error_handlers import register_error_handlers
from bizdesk.controllers.routes.blueprints import register_all_blueprints


def register_blueprints(app: Flask) -> None:
    register_error_handlers(app)
    register_all_blueprints(app)
