import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from ledger.config import settings

REQUEST_LOG_FORMAT = "[%(asctime)s.%(msecs)03d] %(message)s"
APP_LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper()))
    return logger


def setup_request_logger() -> logging.Logger:
    """
    One line per ledger request, written to ``<LOG_DIR>/ledger_requests.log``.

    The file rotates at LOG_MAX_SIZE_MB and keeps LOG_MAX_FILES backups.
    """
    logger = _get_logger("ledger.requests")
    if logger.handlers:
        return logger

    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        filename=log_dir / "ledger_requests.log",
        maxBytes=settings.LOG_MAX_SIZE_MB * 1024 * 1024,
        backupCount=settings.LOG_MAX_FILES,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(fmt=REQUEST_LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)
    return logger


def setup_app_logger() -> logging.Logger:
    """Startup, store and quota-counter events on stdout."""
    logger = _get_logger("ledger.app")
    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt=APP_LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)
    return logger


api_logger = setup_request_logger()
app_logger = setup_app_logger()
