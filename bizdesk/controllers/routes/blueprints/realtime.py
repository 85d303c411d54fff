"""
Blueprint do stream de alteracoes.

Rotas:
    - GET /api/realtime/stream?tables=tasks,clients: Server-Sent Events com as
      alteracoes de linha das tabelas pedidas (notificacoes apenas do proprio
      utilizador)
"""

import queue
from typing import Any

from flask import Blueprint, Response, current_app, g, request, stream_with_context

from bizdesk.constants import (
    TABLE_CLIENTS,
    TABLE_EVENTS,
    TABLE_NOTIFICATIONS,
    TABLE_TASKS,
    TABLE_TRANSACTIONS,
    TABLE_USERS,
)
from bizdesk.controllers.routes._decorators import ready_required
from bizdesk.services.store import ValidationError

realtime_bp = Blueprint("realtime", __name__, url_prefix="/api/realtime")

STREAMABLE_TABLES = (
    TABLE_TASKS,
    TABLE_CLIENTS,
    TABLE_EVENTS,
    TABLE_TRANSACTIONS,
    TABLE_USERS,
    TABLE_NOTIFICATIONS,
)


@realtime_bp.route("/stream")
@ready_required
def stream():
    requested = request.args.get("tables")
    tables = [t.strip() for t in requested.split(",") if t.strip()] if requested else list(STREAMABLE_TABLES)
    unknown = sorted(set(tables) - set(STREAMABLE_TABLES))
    if unknown:
        raise ValidationError(f"unknown table(s): {', '.join(unknown)}")

    feed = current_app.extensions["bizdesk.feed"]
    workspace = g.workspace
    user_id = g.profile.id
    heartbeat_interval = current_app.config.get("REALTIME_HEARTBEAT_INTERVAL", 15)
    pending: "queue.Queue" = queue.Queue(maxsize=100)

    def enqueue(event) -> None:
        try:
            pending.put_nowait(event)
        except queue.Full:
            pass  # slow consumer; the browser re-fetches on reconnect

    subscriptions = [
        feed.subscribe(
            table,
            enqueue,
            filters={"user_id": user_id} if table == TABLE_NOTIFICATIONS else None,
        )
        for table in tables
    ]

    def event_stream() -> Any:
        try:
            yield "retry: 3000\n\n"
            while not workspace.closed:
                workspace.touch()
                try:
                    event = pending.get(timeout=heartbeat_interval)
                except queue.Empty:
                    yield ": keep-alive\n\n"
                    continue
                yield event.to_sse()
        finally:
            for subscription in subscriptions:
                subscription.unsubscribe()

    response = Response(
        stream_with_context(event_stream()),
        mimetype="text/event-stream",
    )
    response.headers["Cache-Control"] = "no-cache"
    response.headers["X-Accel-Buffering"] = "no"
    return response
