"""
Logging configuration for Manifold.

Console output goes through Rich when available, with an optional plain
file log for post-mortem inspection of runs.
"""

import logging
import sys
import traceback
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER_NAME = "manifold"


class FileFormatter(logging.Formatter):
    """Formatter for file logs - clean and parseable."""

    def __init__(self) -> None:
        super().__init__(fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with full exception info for errors."""
        # Base format without the default exc_text block, appended below in full
        exc_info, record.exc_info = record.exc_info, None
        exc_text, record.exc_text = record.exc_text, None
        try:
            result = super().format(record)
        finally:
            record.exc_info = exc_info
            record.exc_text = exc_text

        if record.exc_info:
            result += "\n" + "".join(traceback.format_exception(*record.exc_info)).rstrip()

        return result


class ConsoleFormatter(logging.Formatter):
    """Plain console format: ``LEVEL: timestamp - msg``, with file:line for errors."""

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        base = f"{record.levelname}: {self.formatTime(record)} - {record.getMessage()}"
        if record.levelno >= logging.ERROR and record.pathname:
            base = (
                f"{record.levelname}: {self.formatTime(record)} - "
                f"{Path(record.pathname).name}:{record.lineno} - {record.getMessage()}"
            )
        return base


# Map string level names to logging constants
LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _parse_level(level: str | int | None) -> int:
    """
    Parse logging level from string or int.

    Unknown names fall back to INFO.
    """
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        level_upper = level.upper()
        if level_upper in LEVEL_MAP:
            return LEVEL_MAP[level_upper]
    return logging.INFO


def setup_logging(
    level: str | int = logging.INFO,
    log_file: str | Path | None = None,
    format_string: str | None = None,
    file_mode: str = "a",
    console_enabled: bool = True,
    use_rich: bool = True,
    console: Any | None = None,
) -> logging.Logger:
    """
    Setup logging configuration for Manifold.

    Args:
        level: Logging level as string (DEBUG, INFO, etc.) or int (default: INFO)
        log_file: Optional file path to write logs to (default: None, console only)
        format_string: Optional custom format string for the plain console handler
        file_mode: File mode for file handler - 'a' for append, 'w' for overwrite
        console_enabled: Whether to enable console logging (default: True)
        use_rich: Whether to use RichHandler for console output (default: True)
        console: Optional Rich Console instance to log to

    Returns:
        The configured ``manifold`` logger
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)

    # Only clear handlers from this specific logger, not root or child loggers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    level_int = _parse_level(level)
    logger.setLevel(level_int)

    if console_enabled:
        if use_rich:
            logger.addHandler(
                RichHandler(
                    level=level_int,
                    console=console or Console(stderr=True),
                    show_time=True,
                    show_path=False,
                    markup=False,
                    rich_tracebacks=True,
                    tracebacks_show_locals=False,
                    log_time_format="[%X]",
                )
            )
        else:
            formatter: logging.Formatter = (
                logging.Formatter(format_string) if format_string is not None else ConsoleFormatter()
            )
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(level_int)
            console_handler.setFormatter(formatter)
            logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, mode=file_mode)
        # File captures everything the logger lets through
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(FileFormatter())
        logger.addHandler(file_handler)

    logger.propagate = True
    return logger


def setup_logging_from_config(config: Any, project_dir: Path | None = None) -> logging.Logger:
    """
    Setup logging from the ``logging`` section of a Manifold configuration.

    Args:
        config: ``Config`` instance or plain dict (section may be nested under 'logging')
        project_dir: Optional project directory for resolving relative log file paths

    Returns:
        The configured ``manifold`` logger
    """
    data = getattr(config, "data", config) or {}
    logging_config = data.get("logging") or {}

    level = logging_config.get("level", logging.INFO)
    file_mode = logging_config.get("file_mode", "a")
    format_string = logging_config.get("format")
    console_enabled = logging_config.get("console_enabled", True)
    console_type = logging_config.get("console_type", "rich")

    log_file = logging_config.get("file")
    if log_file and project_dir:
        log_file = Path(log_file)
        if not log_file.is_absolute():
            log_file = project_dir / log_file

    return setup_logging(
        level=level,
        log_file=log_file,
        format_string=format_string,
        file_mode=file_mode,
        console_enabled=console_enabled,
        use_rich=console_type == "rich",
    )


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """
    Get a logger instance.

    Child loggers (``manifold.executor`` etc.) propagate to the ``manifold``
    logger so a single ``setup_logging`` call captures all of them.
    """
    logger = logging.getLogger(name)
    logger.propagate = True
    return logger


def format_duration(elapsed: float) -> str:
    """Format a duration in seconds in human-readable form."""
    if elapsed < 1.0:
        return f"{elapsed * 1000:.0f}ms"
    elif elapsed < 60.0:
        return f"{elapsed:.2f}s"
    else:
        minutes = int(elapsed // 60)
        seconds = elapsed % 60
        return f"{minutes}m{seconds:.1f}s"
