"""
Logging setup for the Telem advisor API.

Every application logger lives under the "telem" namespace so one call to
setup_logging() controls them all. Library loggers are clamped separately so
SQL echo and access logs stay quiet unless asked for.
"""
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

from telem import config

APP_NAMESPACE = "telem"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

THIRD_PARTY_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.engine.Engine",
    "sqlalchemy.dialects",
    "sqlalchemy.pool",
    "sqlalchemy.orm",
    "alembic",
    "uvicorn.access",
    "uvicorn.error",
    "httpx",
    "faker",
)


def _level(name: Optional[str], fallback: int) -> int:
    if not name:
        return fallback
    return getattr(logging, name.upper(), fallback)


def _file_handler(log_file: str, level: int, formatter: logging.Formatter) -> logging.Handler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=config.LOG_MAX_BYTES,
        backupCount=config.LOG_BACKUP_COUNT,
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    app_log_level: Optional[str] = None,
    third_party_log_level: Optional[str] = None,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the "telem" logger tree.

    Arguments override the APP_LOG_LEVEL, THIRD_PARTY_LOG_LEVEL and LOG_FILE
    settings from telem.config. Safe to call more than once; handlers are
    replaced, not stacked.

    Returns:
        The root application logger
    """
    app_level = _level(app_log_level or config.APP_LOG_LEVEL, logging.INFO)
    library_level = _level(third_party_log_level or config.THIRD_PARTY_LOG_LEVEL, logging.WARNING)
    log_file = log_file or config.LOG_FILE

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    app_logger = logging.getLogger(APP_NAMESPACE)
    app_logger.setLevel(app_level)
    app_logger.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(app_level)
    console.setFormatter(formatter)
    app_logger.addHandler(console)

    if log_file:
        app_logger.addHandler(_file_handler(log_file, app_level, formatter))

    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    # SQL_ECHO wins over the clamp for the engine logger
    if config.SQL_ECHO:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)

    app_logger.propagate = False
    return app_logger


def get_logger(name: str = APP_NAMESPACE) -> logging.Logger:
    """Logger for a module, namespaced under "telem"."""
    if name == APP_NAMESPACE or name.startswith(APP_NAMESPACE + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{APP_NAMESPACE}.{name}")
