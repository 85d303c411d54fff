"""Application entry point for running the Flask app with Waitress."""
import logging
import os

from waitress import serve

from bizdesk import app
from bizdesk.scheduler import init_scheduler


def _get_int_env(var_name: str, default: int) -> int:
    """Safely parse integer environment variables with defaults."""
    value = os.getenv(var_name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


if __name__ == "__main__":
    waitress_log_level = os.getenv("WAITRESS_LOG_LEVEL", "info").upper()
    os.environ.setdefault("WAITRESS_LOG_LEVEL", waitress_log_level.lower())
    logging.getLogger("waitress").setLevel(waitress_log_level)

    init_scheduler(app)

    host = os.getenv("WAITRESS_HOST", "127.0.0.1")
    port = _get_int_env("WAITRESS_PORT", 5000)

    threads = _get_int_env("WAITRESS_THREADS", 16)
    connection_limit = _get_int_env("WAITRESS_CONNECTION_LIMIT", 256)
    backlog = _get_int_env("WAITRESS_BACKLOG", 256)

    # SSE streams stay open; keep above REALTIME_HEARTBEAT_INTERVAL.
    channel_timeout = _get_int_env("WAITRESS_CHANNEL_TIMEOUT", 100)

    recv_bytes = _get_int_env("WAITRESS_RECV_BYTES", 32768)
    send_bytes = _get_int_env("WAITRESS_SEND_BYTES", 32768)

    inbuf_overflow = _get_int_env("WAITRESS_INBUF_OVERFLOW", 32 * 1024 * 1024)

    expose_tracebacks = os.getenv("WAITRESS_EXPOSE_TRACEBACKS", "0") == "1"

    logging.getLogger(__name__).info(
        "Starting Waitress: host=%s port=%s threads=%s channel_timeout=%s",
        host,
        port,
        threads,
        channel_timeout,
    )

    serve(
        app,
        host=host,
        port=port,
        threads=threads,
        channel_timeout=channel_timeout,
        connection_limit=connection_limit,
        backlog=backlog,
        asyncore_use_poll=True,
        clear_untrusted_proxy_headers=True,
        max_request_body_size=app.config.get("MAX_CONTENT_LENGTH"),
        inbuf_overflow=inbuf_overflow,
        recv_bytes=recv_bytes,
        send_bytes=send_bytes,
        expose_tracebacks=app.debug or expose_tracebacks,
    )
