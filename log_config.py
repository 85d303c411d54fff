import logging
import os
from logging.handlers import RotatingFileHandler


def setup_logging(log_dir: str | None = None, json_format: bool | None = None):
    """Configure root logger to write to logs/app.log."""
    from bizdesk.utils.logging_config import JsonFormatter, resolve_log_dir

    log_dir = resolve_log_dir(log_dir or os.getenv("APP_LOG_DIR"))
    log_file = os.path.join(log_dir, 'app.log')

    if json_format is None:
        json_format = os.getenv("LOG_FORMAT", "").lower() == "json"
    if json_format:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter('%(asctime)s %(levelname)s [%(module)s] %(message)s')

    file_handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=5, encoding='utf-8')
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(formatter)

    logger = logging.getLogger()
    if not any(isinstance(h, RotatingFileHandler) and h.baseFilename == file_handler.baseFilename for h in logger.handlers):
        logger.setLevel(logging.INFO)
        logger.addHandler(file_handler)
        # also log waitress requests
        logging.getLogger('waitress').addHandler(file_handler)
    else:
        file_handler.close()
    return logger
