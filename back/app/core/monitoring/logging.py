# Standard library imports
from collections.abc import MutableMapping
from functools import lru_cache
import logging
import sys
from typing import Any

# Local application imports
from app.settings import settings

# Loggers named after application modules ("app.services...") share this one
APP_LOGGER_NAME = "app"


class ConsoleFormatter(logging.Formatter):
    """
    Console formatter, colored by level when writing to a terminal.
    """

    # ANSI color codes
    LEVEL_COLORS = {
        logging.DEBUG: "\x1b[38;20m",
        logging.INFO: "\x1b[38;20m",
        logging.WARNING: "\x1b[33;20m",
        logging.ERROR: "\x1b[31;20m",
        logging.CRITICAL: "\x1b[31;1m",
    }
    RESET = "\x1b[0m"

    CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    def __init__(self, use_color: bool = True):
        super().__init__(self.CONSOLE_FORMAT)
        self._colored = {
            level: logging.Formatter(color + self.CONSOLE_FORMAT + self.RESET)
            for level, color in self.LEVEL_COLORS.items()
        } if use_color else {}

    def format(self, record: logging.LogRecord) -> str:
        formatter = self._colored.get(record.levelno)
        if formatter is None:
            return super().format(record)
        return formatter.format(record)


def _attach_console_handler(logger: logging.Logger, level: int) -> None:
    if logger.handlers:
        return
    logger.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(ConsoleFormatter(use_color=sys.stdout.isatty()))
    logger.addHandler(handler)


@lru_cache
def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Get a logger whose records reach the console exactly once.

    Application modules log through the shared ``app`` logger's handler;
    other names (Celery signal loggers, for instance) get their own. Errors
    reach Sentry through the LoggingIntegration configured in ``sentry.py``.

    Args:
        name: The name of the logger
        level: Optional logging level override

    Returns:
        A configured logger instance
    """
    default_level = logging.DEBUG if settings.DEBUG_MODE else logging.INFO
    logger = logging.getLogger(name)

    if name == APP_LOGGER_NAME or name.startswith(f"{APP_LOGGER_NAME}."):
        _attach_console_handler(logging.getLogger(APP_LOGGER_NAME), default_level)
    else:
        _attach_console_handler(logger, default_level)

    if level is not None:
        logger.setLevel(level)
    return logger


class LoggerAdapter(logging.LoggerAdapter[logging.Logger]):
    """
    Appends ``key=value`` context (issue id, task id, ...) to every message.
    """

    def __init__(self, logger: logging.Logger, extra: dict[str, Any] | None = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: MutableMapping[str, Any]) -> tuple[str, MutableMapping[str, Any]]:
        if self.extra:
            context_str = " ".join(f"{k}={v}" for k, v in self.extra.items())
            msg = f"{msg} [{context_str}]"
        return msg, kwargs

    def bind(self, **context: Any) -> "LoggerAdapter":
        """Return a new adapter with ``context`` merged into the current one."""
        return LoggerAdapter(self.logger, {**dict(self.extra or {}), **context})


def get_contextual_logger(name: str, **context: Any) -> LoggerAdapter:
    return LoggerAdapter(get_logger(name), context)
