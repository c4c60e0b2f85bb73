"""
Logging for the Meeting Capture Bot.

Everything logs under the `meet_capture` root: colored console output, an
optional rotating file, and per-meeting adapters that tag each line with the
meeting id. Agent diagnostic loggers live under `meet_capture.agent.<session>`.
"""

import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, MutableMapping, Optional, Tuple

from meet_capture.config import settings


ROOT_LOGGER_NAME = "meet_capture"

LOG_DIR = Path("logs")
CONSOLE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty transport libraries, only shown in DEBUG
THIRD_PARTY_LOGGERS = ("socketio.client", "engineio.client", "httpx", "httpcore")


class ColoredFormatter(logging.Formatter):
    """Console formatter that colors the level name."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[41m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname)
        if color is None:
            return super().format(record)

        # Color a copy so the file handler still sees the plain level name
        colored = logging.makeLogRecord(record.__dict__)
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(colored)


class MeetingLogAdapter(logging.LoggerAdapter):
    """Prefixes every message with the meeting it belongs to."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"[{self.extra['meeting_id']}] {msg}", kwargs


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(ColoredFormatter(fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _file_handler(level: int, log_file: Optional[str]) -> logging.Handler:
    LOG_DIR.mkdir(exist_ok=True)
    filename = log_file or LOG_DIR / f"meet_capture_{datetime.now().strftime('%Y%m%d')}.log"
    handler = RotatingFileHandler(
        filename,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
    enable_file_logging: Optional[bool] = None,
) -> logging.Logger:
    """
    Configure the `meet_capture` logger tree.

    Args:
        log_level: Override log level from settings
        log_file: Override log file path
        enable_file_logging: Write a rotating log file (defaults to LOG_TO_FILE)

    Returns:
        The root application logger
    """
    level = getattr(logging, (log_level or settings.log_level).upper())
    if enable_file_logging is None:
        enable_file_logging = settings.log_to_file

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    logger.addHandler(_console_handler(level))
    if enable_file_logging:
        logger.addHandler(_file_handler(level, log_file))

    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(level if level == logging.DEBUG else logging.WARNING)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Child logger under the application root, e.g. `meet_capture.orchestrator`."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def get_meeting_logger(name: str, meeting_id: str) -> MeetingLogAdapter:
    """Child logger whose lines carry the meeting id."""
    return MeetingLogAdapter(get_logger(name), {"meeting_id": meeting_id})
