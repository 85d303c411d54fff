"""Flask application and shared runtime state."""

import atexit
import logging
import secrets
import time

from flask import Flask, g, request

from config import Config
from log_config import setup_logging
from bizdesk.extensions import task_queue
from bizdesk.scheduler import scheduler
from bizdesk.services.realtime import ChangeFeed
from bizdesk.services.workspace import Platform, WorkspaceRegistry
from bizdesk.utils.logging_config import log_request_info

app = Flask(__name__)

logger = logging.getLogger(__name__)

app.config.from_object(Config)
if not Config.SECRET_KEY:
    logger.warning("SECRET_KEY não definido; usando chave aleatória por processo")
    app.config["SECRET_KEY"] = secrets.token_hex(32)
app.config["MAX_CONTENT_LENGTH"] = Config.MAX_CONTENT_LENGTH

setup_logging(Config.APP_LOG_DIR)
Config.validate()

feed = ChangeFeed()
platform = Platform(Config, feed, scheduler)
workspaces = WorkspaceRegistry(platform)
workspaces.schedule_maintenance(scheduler)

app.extensions["bizdesk.feed"] = feed
app.extensions["bizdesk.platform"] = platform
app.extensions["bizdesk.workspaces"] = workspaces


def _shutdown_runtime() -> None:
    """Close every workspace, then the IO pool."""
    workspaces.close_all()
    task_queue.shutdown(wait=False)


atexit.register(_shutdown_runtime)


@app.before_request
def _start_request_timer():
    """Store the high-resolution start time for slow request logging."""
    g.request_started_at = time.perf_counter()


@app.after_request
def _log_slow_requests(response):
    started_at = getattr(g, "request_started_at", None)
    if started_at is not None:
        duration_ms = (time.perf_counter() - started_at) * 1000
        log_request_info(
            app.logger,
            request,
            response,
            duration_ms,
            app.config.get("SLOW_REQUEST_THRESHOLD_MS", 0) or 0,
        )
    return response


from bizdesk.controllers.routes import register_blueprints  # noqa: E402

register_blueprints(app)
