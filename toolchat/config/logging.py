"""
Logging setup for toolchat.

Everything logs under the ``toolchat`` logger hierarchy. Console output is
colored by level and always goes to stderr, because ``toolchat chat`` writes
the SSE event stream to stdout. A plain-text file handler is added when
``log_file`` is configured.
"""

import logging
import sys
from pathlib import Path

from toolchat.config.settings import Settings

_ROOT = "toolchat"

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that log every request at INFO
NOISY_LOGGERS = ("LiteLLM", "litellm", "httpx", "httpcore", "mcp")


class ColoredFormatter(logging.Formatter):
    """Colors the level name on console output."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        # The record is shared with the file handler; restore it after formatting
        original = record.levelname
        color = self.LEVEL_COLORS.get(original)
        if color:
            record.levelname = f"{color}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def _handler(handler: logging.Handler, formatter: logging.Formatter, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(settings: Settings) -> None:
    """
    Configure the ``toolchat`` logger from settings.

    Safe to call more than once; previously installed handlers are replaced.
    """
    level = getattr(logging, settings.log_level)
    logger = logging.getLogger(_ROOT)
    logger.setLevel(level)
    logger.handlers.clear()

    logger.addHandler(
        _handler(
            logging.StreamHandler(sys.stderr),
            ColoredFormatter(fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT),
            level,
        )
    )

    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.addHandler(
            _handler(
                logging.FileHandler(log_path, encoding="utf-8"),
                logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT),
                level,
            )
        )

    logger.propagate = False

    if level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug(
        f"Logging initialized - Level: {settings.log_level}"
        + (f", file: {settings.log_file}" if settings.log_file else "")
    )


def get_logger(name: str) -> logging.Logger:
    """
    Logger for a module, placed under the ``toolchat`` hierarchy.

    Args:
        name: Usually ``__name__``; names outside the package are prefixed
    """
    if name == _ROOT or name.startswith(f"{_ROOT}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT}.{name}")
