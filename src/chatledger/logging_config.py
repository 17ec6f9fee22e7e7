"""
Logging configuration for chatledger.

Sets up console and rotating file handlers for the CLI and API processes.
Each process calls setup_logging() once with a context name that selects
the log file (e.g. "cli" -> cli.log, "api" -> api.log).
"""

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from chatledger.config import settings

STANDARD_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_configured_context: Optional[str] = None


class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class _MaxLevelFilter(logging.Filter):
    """Only pass records strictly below a level (stdout/stderr split)."""

    def __init__(self, max_level: int):
        super().__init__()
        self.max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.max_level


def _build_formatter() -> logging.Formatter:
    if settings.log_format == "json":
        return JsonFormatter()
    return logging.Formatter(STANDARD_FORMAT)


def setup_logging(context: str = "app", level: Optional[str] = None) -> None:
    """
    Configure root logging for a process.

    Args:
        context: Process context, used as the log file name
        level: Override for settings.log_level

    Note:
        Calling this more than once for the same context is a no-op. If the
        log directory cannot be created, file logging is skipped and a
        warning is emitted on the console handlers.
    """
    global _configured_context

    if _configured_context == context:
        return

    root = logging.getLogger()
    root.setLevel((level or settings.log_level).upper())

    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = _build_formatter()

    if settings.log_console_enabled:
        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setLevel(logging.DEBUG)
        stdout_handler.addFilter(_MaxLevelFilter(logging.WARNING))
        stdout_handler.setFormatter(formatter)
        root.addHandler(stdout_handler)

        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(logging.WARNING)
        stderr_handler.setFormatter(formatter)
        root.addHandler(stderr_handler)

    file_error: Optional[OSError] = None
    if settings.log_file_enabled:
        try:
            log_dir = settings.log_directory
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_dir / f"{context}.log",
                maxBytes=settings.log_max_bytes,
                backupCount=settings.log_backup_count,
                encoding="utf-8",
            )
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)
        except OSError as e:
            file_error = e

    # Keep SQLAlchemy engine chatter out of INFO logs unless echo is requested
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.db_echo else logging.WARNING
    )

    _configured_context = context

    if file_error is not None:
        logging.getLogger(__name__).warning(
            f"File logging disabled for context {context!r}: {file_error}"
        )
