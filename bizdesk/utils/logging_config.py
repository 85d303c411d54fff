"""Structured logging helpers shared by the service and its background jobs."""

import json
import logging
import os
import tempfile
from typing import Optional

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """JSON formatter for cleaner machine-parsable logs."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload = {
            "timestamp": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "module": record.module,
            "func": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def resolve_log_dir(log_dir: Optional[str] = None) -> str:
    """Resolve a writable log directory, with fallback when the primary is unavailable."""
    if not log_dir:
        root_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
        log_dir = os.path.join(root_dir, "logs")

    try:
        os.makedirs(log_dir, exist_ok=True)
        test_path = os.path.join(log_dir, ".write-test")
        with open(test_path, "w", encoding="utf-8") as test_file:
            test_file.write("ok")
        os.remove(test_path)
        return log_dir
    except OSError:
        # Fall back to a temp location to keep the app running even if the primary path is not writable
        fallback_dir = os.path.join(tempfile.gettempdir(), "bizdesk-logs")
        os.makedirs(fallback_dir, exist_ok=True)
        return fallback_dir


def log_request_info(logger: logging.Logger, request, response, duration_ms: float, threshold_ms: float) -> None:
    """Log slow or failing requests for monitoring."""
    if threshold_ms and duration_ms >= threshold_ms:
        logger.warning(
            "SLOW REQUEST (%s ms): %s %s -> %s",
            f"{duration_ms:.0f}",
            request.method,
            request.path,
            response.status_code,
        )
    elif response.status_code >= 500:
        logger.error(
            "ERROR RESPONSE: %s %s from %s -> %s",
            request.method,
            request.path,
            request.remote_addr,
            response.status_code,
        )
