"""
Módulo de agendamento de tarefas.

Um único ``BackgroundScheduler`` por processo; cada motor de prazos regista
nele o seu próprio job (um por sessão) ao arrancar e remove-o ao parar.
"""

import atexit
import logging

from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger(__name__)
scheduler = BackgroundScheduler()


def init_scheduler(app) -> None:
    """
    Start the shared scheduler.

    Args:
        app: Instância da aplicação Flask (timezone vem de ``APP_TIMEZONE``).
    """
    if scheduler.running:
        logger.warning("Scheduler já está rodando, pulando inicialização")
        return

    scheduler.configure(timezone=app.config.get("APP_TIMEZONE", "UTC"))
    scheduler.start()
    logger.info("Scheduler iniciado")

    def _shutdown() -> None:
        if scheduler.running:
            scheduler.shutdown(wait=False)
            logger.info("Scheduler finalizado")

    atexit.register(_shutdown)
