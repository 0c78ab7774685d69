"""
Centralized logging configuration for chef.

Modules log through ``logging.getLogger(__name__)``; this module configures
the ``chef`` logger those names hang off. Programs running as providers must
keep stdout free for protocol lines and pass ``stream=sys.stderr``.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, TextIO


LOGGER_NAME = "chef"
CONSOLE_FORMAT = "%(levelname_colored)s %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Global logger instance
_logger: Optional[logging.Logger] = None


def _console_handler(stream: TextIO, level: int) -> logging.Handler:
    handler = logging.StreamHandler(stream)
    handler.setLevel(level)
    isatty = getattr(stream, "isatty", None)
    handler.setFormatter(ColoredFormatter(CONSOLE_FORMAT, use_colors=bool(isatty and isatty())))
    return handler


def _file_handler(log_file: str) -> logging.Handler:
    log_path = Path(log_file).expanduser()
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)  # Always log everything to file
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    verbose: bool = False,
    quiet: bool = False,
    propagate: bool = False,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Configure the chef logger.

    Calling it again replaces the previous handlers.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output
        verbose: Enable verbose (DEBUG) output
        quiet: Only warnings and errors; no console output
        propagate: Allow log propagation (useful for testing)
        stream: Console stream (default: stdout)

    Returns:
        Configured logger instance
    """
    global _logger

    if verbose:
        effective_level = logging.DEBUG
    elif quiet:
        effective_level = logging.WARNING
    else:
        effective_level = getattr(logging, level.upper())

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(effective_level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if not quiet:
        logger.addHandler(_console_handler(stream or sys.stdout, effective_level))
    if log_file:
        logger.addHandler(_file_handler(log_file))

    logger.propagate = propagate

    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    """
    Get the configured logger instance.

    If logging hasn't been set up, initializes with defaults.
    """
    global _logger
    if _logger is None:
        _logger = setup_logging()
    return _logger


class ColoredFormatter(logging.Formatter):
    """
    Formatter with a colored level name and symbol per level.
    """

    COLORS = {
        "DEBUG": "\033[36m",      # Cyan
        "INFO": "\033[32m",       # Green
        "WARNING": "\033[33m",    # Yellow
        "ERROR": "\033[31m",      # Red
        "CRITICAL": "\033[1;31m", # Bold Red
    }
    RESET = "\033[0m"

    SYMBOLS = {
        "DEBUG": "·",
        "INFO": "✓",
        "WARNING": "⚠",
        "ERROR": "✗",
        "CRITICAL": "✗✗",
    }

    def __init__(self, fmt: str, use_colors: bool = True):
        super().__init__(fmt)
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if self.use_colors:
            color = self.COLORS.get(levelname, "")
            symbol = self.SYMBOLS.get(levelname, "")
            record.levelname_colored = f"{color}{symbol} {levelname}{self.RESET}"
        else:
            record.levelname_colored = levelname
        return super().format(record)
