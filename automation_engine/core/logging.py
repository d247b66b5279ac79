"""Logging configuration for the workflow automation engine.

Every handler installed by :func:`setup_logging` carries a thread-local
context filter, so log lines emitted while a run is executing on a worker
thread are tagged with that run's ids without passing them around.
"""

import json
import logging
import sys
import threading
import traceback
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s%(context_suffix)s"

# Promoted to top-level keys in structured output; anything else goes under "context"
RUN_FIELDS = ("run_id", "workflow_id", "node_id", "request_id")

NOISY_LOGGERS = {
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
    "urllib3": logging.WARNING,
    "asyncio": logging.WARNING,
}


class RunContextFilter(logging.Filter):
    """Attaches the current thread's bound fields to each record as ``extra_fields``."""

    def __init__(self):
        super().__init__()
        self._local = threading.local()

    @property
    def fields(self) -> Dict[str, Any]:
        if not hasattr(self._local, "fields"):
            self._local.fields = {}
        return self._local.fields

    def bind(self, **fields):
        self.fields.update(fields)

    def clear(self):
        self.fields.clear()

    def filter(self, record: logging.LogRecord) -> bool:
        extra = dict(self.fields)
        extra.update(getattr(record, "extra_fields", {}))
        record.extra_fields = extra

        bound = [f"{key}={extra[key]}" for key in RUN_FIELDS if key in extra]
        record.context_suffix = f" [{' '.join(bound)}]" if bound else ""
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per line; run identifiers are top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra = dict(getattr(record, "extra_fields", {}))
        for key in RUN_FIELDS:
            if key in extra:
                entry[key] = extra.pop(key)
        if extra:
            entry["context"] = extra

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(entry, default=str)


_context_filter = RunContextFilter()


def _build_handlers(log_file: Optional[str], max_size: int, backup_count: int) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(log_file, maxBytes=max_size, backupCount=backup_count))
    return handlers


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    structured: bool = False,
    max_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5
) -> logging.Logger:
    """
    Configure root logging for the engine and its HTTP surface.

    Replaces any handlers already on the root logger.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path of a size-rotated log file
        log_format: Format string for plain-text output; may use ``%(context_suffix)s``
        structured: Emit JSON lines instead of plain text
        max_size: Maximum log file size in bytes before rotation
        backup_count: Number of rotated files to keep

    Returns:
        Root logger instance
    """
    numeric_level = getattr(logging, level.upper())
    if structured:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(fmt=log_format or DEFAULT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    for handler in _build_handlers(log_file, max_size, backup_count):
        handler.setFormatter(formatter)
        handler.addFilter(_context_filter)
        root_logger.addHandler(handler)

    for name, noisy_level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(noisy_level)

    # Engine loggers stay at INFO or more verbose
    engine_level = min(numeric_level, logging.INFO)
    logging.getLogger("automation_engine.core").setLevel(engine_level)
    logging.getLogger("automation_engine.executors").setLevel(engine_level)
    logging.getLogger("automation_engine.api").setLevel(logging.INFO)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_logging_context(**kwargs):
    """Bind fields to every log line emitted by the current thread."""
    _context_filter.bind(**kwargs)


def clear_logging_context():
    _context_filter.clear()


def log_with_context(logger: logging.Logger, level: int, message: str, **context):
    """Log one message with extra fields, in addition to the thread's bound ones."""
    logger.log(level, message, extra={"extra_fields": context})
