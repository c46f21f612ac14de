"""Logging configuration and the per-session log sink for shipctl."""

import logging
import sys
from enum import Enum
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

SESSION_LOG_FORMAT = "%(asctime)s %(message)s"
SESSION_LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


class LogLevel(str, Enum):
    """Log level enumeration."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


def setup_logging(
    level: LogLevel = LogLevel.INFO,
    rich_output: bool = True,
) -> logging.Logger:
    """Configure logging for shipctl.

    Args:
        level: The logging level
        rich_output: Whether to use Rich for formatted output

    Returns:
        Configured logger instance
    """
    log_level = getattr(logging, level.value.upper())

    # Remove existing handlers
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if rich_output:
        handler = RichHandler(
            console=Console(stderr=True),
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    logger = logging.getLogger("shipctl")
    logger.setLevel(log_level)

    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific module.

    Args:
        name: The module name (typically __name__)

    Returns:
        Logger instance
    """
    if name.startswith("shipctl."):
        return logging.getLogger(name)
    return logging.getLogger(f"shipctl.{name}")


class StructuredLogger:
    """Logger that supports structured logging with context."""

    def __init__(self, name: str):
        self._logger = get_logger(name)
        self._context: dict[str, Any] = {}

    def bind(self, **kwargs: Any) -> "StructuredLogger":
        """Create a new logger with additional context."""
        new_logger = StructuredLogger(self._logger.name)
        new_logger._context = {**self._context, **kwargs}
        return new_logger

    def _format_message(self, message: str, **kwargs: Any) -> str:
        """Append bound and call-site context as key=value pairs."""
        context = {**self._context, **kwargs}
        if context:
            context_str = " ".join(f"{k}={v}" for k, v in context.items())
            return f"{message} [{context_str}]"
        return message

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log debug message."""
        self._logger.debug(self._format_message(message, **kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        """Log info message."""
        self._logger.info(self._format_message(message, **kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        """Log warning message."""
        self._logger.warning(self._format_message(message, **kwargs))

    def error(self, message: str, **kwargs: Any) -> None:
        """Log error message."""
        self._logger.error(self._format_message(message, **kwargs))

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log error message with the active traceback."""
        self._logger.exception(self._format_message(message, **kwargs))


class SessionLog:
    """Append-only, line-oriented record of one deployment session.

    Lines go through a dedicated non-propagating logger so the file never
    duplicates onto the console handlers.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        self._logger = logging.getLogger(f"shipctl.session.{self.path.stem}.{id(self):x}")
        self._logger.propagate = False
        self._logger.setLevel(logging.DEBUG)

        self._handler = logging.FileHandler(self.path, mode="a", encoding="utf-8")
        self._handler.setFormatter(
            logging.Formatter(SESSION_LOG_FORMAT, datefmt=SESSION_LOG_DATEFMT)
        )
        self._logger.addHandler(self._handler)

    def write(self, message: str) -> None:
        """Append one record; multi-line text keeps one timestamp per line."""
        for line in message.splitlines() or [""]:
            self._logger.info(line)
        self._handler.flush()

    def command(self, step: str, command: str) -> None:
        """Record a remote or local invocation before it runs."""
        self.write(f"[CMD] [{step}] Executing: {command}")

    def output(self, step: str, output: str, exit_status: int) -> None:
        """Record captured output and the exit status of an invocation."""
        if output:
            self.write(output.rstrip("\n"))
        self.write(f"[CMD] [{step}] Exit status: {exit_status}")

    def read(self) -> str:
        self._handler.flush()
        return self.path.read_text(encoding="utf-8")

    def close(self) -> None:
        self._logger.removeHandler(self._handler)
        self._handler.close()
