"""
Logging configuration for the entity migration.

The migration logs on two levels: one line per section and per step from
the pipeline, and one DEBUG line per resolution decision from the ETL
modules. The ETL loggers get their own level so a long run can keep the
section summaries on the console while the per-record trail is either
silenced or sent to the migration log file.

Environment Variables:
    LOG_LEVEL: Level for the console and every logger (default: INFO).
    ETL_LOG_LEVEL: Level for the ``entity_migration.etl`` loggers only
                   (default: same as LOG_LEVEL).

The migration log file comes from Config (``--log-file`` or
``MIGRATION_LOG_FILE``) and is passed in as ``log_file``.

Usage:
    from entity_migration.logger_config import setup_logging
    setup_logging()

    # Summaries on the console, every resolution decision in the file:
    setup_logging(level=logging.INFO, etl_level=logging.DEBUG, log_file="migration.log")
"""

import logging
import logging.config
import os
from typing import Optional

DEFAULT_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"

# Logger that owns the per-record resolution and loader messages
ETL_LOGGER = "entity_migration.etl"

LOG_FILE_MAX_BYTES = 10_485_760  # 10 MB
LOG_FILE_BACKUPS = 5


def get_log_level(env_var: str = "LOG_LEVEL", default: int = logging.INFO) -> int:
    """
    Get a log level from an environment variable.

    Supports: DEBUG, INFO, WARNING, ERROR, CRITICAL (case-insensitive).

    Args:
        env_var: Environment variable to read.
        default: Level used when the variable is unset or invalid.

    Returns:
        Logging level constant (e.g., logging.INFO).
    """
    level_name = os.getenv(env_var, "").strip().upper()
    if not level_name:
        return default

    level = getattr(logging, level_name, None)
    if not isinstance(level, int):
        return default
    return level


def setup_logging(
    level: Optional[int] = None,
    format_string: Optional[str] = None,
    log_file: Optional[str] = None,
    etl_level: Optional[int] = None,
) -> None:
    """
    Configure logging for the migration using dictConfig.

    Handlers carry no level of their own, so a DEBUG record from the ETL
    loggers reaches the console and the file even when the root is at INFO.

    Args:
        level: Root level. If None, reads LOG_LEVEL (default: INFO).
        format_string: Optional custom format string.
        log_file: Optional migration log file (rotated at 10 MB).
        etl_level: Level for the ETL loggers. If None, reads ETL_LOG_LEVEL,
            falling back to ``level``.
    """
    if level is None:
        level = get_log_level()
    if etl_level is None:
        etl_level = get_log_level("ETL_LOG_LEVEL", default=level)

    handlers = ["console"]
    config: dict = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": format_string or DEFAULT_FORMAT,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            ETL_LOGGER: {"level": etl_level},
        },
        "root": {
            "level": level,
            "handlers": handlers,
        },
    }

    if log_file:
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "standard",
            "filename": log_file,
            "maxBytes": LOG_FILE_MAX_BYTES,
            "backupCount": LOG_FILE_BACKUPS,
            "encoding": "utf-8",
        }
        handlers.append("file")

    logging.config.dictConfig(config)
