"""
Logging setup for Photo Discovery
Human-readable console lines plus daily-rotating JSON lines on disk.
"""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from logging.handlers import TimedRotatingFileHandler
from pythonjsonlogger import jsonlogger
from typing import Optional

from photo_discovery.config import Settings, settings as default_settings

ROOT_LOGGER = "photo_discovery"
LOG_FILENAME = "photo-discovery.log"
CONSOLE_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'
JSON_FORMAT = '%(timestamp)s %(level)s %(name)s %(message)s'


class PhotoDiscoveryFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter for service logs

    Every record gets a UTC ``timestamp``, the upper-case ``level`` and the
    ``component`` that emitted it: ``photo_discovery.services.search_engine``
    logs as ``search_engine``.
    """

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        log_record['level'] = record.levelname
        log_record['component'] = component_for(record.name)


def component_for(logger_name: str) -> str:
    if logger_name.startswith(ROOT_LOGGER + "."):
        return logger_name.rsplit(".", 1)[-1]
    return "photo-discovery"


def setup_logger(
    settings: Optional[Settings] = None,
    log_level: Optional[str] = None,
    console: bool = True,
) -> logging.Logger:
    """
    Configure the package logger from settings

    Calling it again replaces (and closes) the handlers a previous call
    installed, so the CLI and the HTTP app can each configure logging.

    Args:
        settings: Source of log_dir, log_level and json_logs
        log_level: Overrides settings.log_level
        console: Write to stdout as well

    Returns:
        The ``photo_discovery`` logger
    """
    settings = settings or default_settings
    logger = logging.getLogger(ROOT_LOGGER)
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(fmt=CONSOLE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        logger.addHandler(console_handler)

    if settings.log_dir:
        log_dir = Path(settings.log_dir).expanduser()
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = TimedRotatingFileHandler(
            filename=log_dir / LOG_FILENAME,
            when='midnight',
            backupCount=7,
            encoding='utf-8'
        )
        file_handler.setLevel(level)
        if settings.json_logs:
            file_handler.setFormatter(PhotoDiscoveryFormatter(fmt=JSON_FORMAT))
        else:
            file_handler.setFormatter(logging.Formatter(fmt=CONSOLE_FORMAT))
        logger.addHandler(file_handler)

    logger.debug(f"Logging configured (level={logging.getLevelName(level)}, log_dir={settings.log_dir})")
    return logger
