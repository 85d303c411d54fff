"""
Registro centralizado de blueprints da aplicacao.

Blueprints Disponiveis:
    - health_bp: health checks (/ping, /api/health)
    - uploads_bp: arquivos enviados no modo local (/uploads/*)
    - auth_bp: login, cadastro, OAuth, recuperacao de senha e logout
    - session_bp: estado da sessao, onboarding, perfil e avatar
    - tasks_bp: kanban de tarefas
    - clients_bp: funil de leads
    - events_bp: calendario
    - transactions_bp: gestao financeira
    - team_bp: desempenho da equipe
    - notifications_bp: caixa de notificacoes
    - realtime_bp: stream SSE do change feed
"""

from flask import Flask


def register_all_blueprints(app: Flask) -> None:
    from bizdesk.controllers.routes.blueprints.health import health_bp
    app.register_blueprint(health_bp)

    from bizdesk.controllers.routes.blueprints.uploads import uploads_bp
    app.register_blueprint(uploads_bp)

    from bizdesk.controllers.routes.blueprints.auth import auth_bp
    app.register_blueprint(auth_bp)

    from bizdesk.controllers.routes.blueprints.session import session_bp
    app.register_blueprint(session_bp)

    from bizdesk.controllers.routes.blueprints.tasks import tasks_bp
    app.register_blueprint(tasks_bp)

    from bizdesk.controllers.routes.blueprints.clients import clients_bp
    app.register_blueprint(clients_bp)

    from bizdesk.controllers.routes.blueprints.events import events_bp
    app.register_blueprint(events_bp)

    from bizdesk.controllers.routes.blueprints.transactions import transactions_bp
    app.register_blueprint(transactions_bp)

    from bizdesk.controllers.routes.blueprints.team import team_bp
    app.register_blueprint(team_bp)

    from bizdesk.controllers.routes.blueprints.notifications import notifications_bp
    app.register_blueprint(notifications_bp)

    from bizdesk.controllers.routes.blueprints.realtime import realtime_bp
    app.register_blueprint(realtime_bp)
