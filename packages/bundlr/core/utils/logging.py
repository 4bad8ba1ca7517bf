"""Logging configuration utilities for bundlr.

Provides:
- Text or JSON-lines output, to stdout or a file
- Context-aware loggers (LoggerAdapter) for per-operation fields
- A timing context manager used around long filesystem and tool steps
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
import json
import logging
import sys
import time
from typing import Any

# LogRecord attributes that are never copied into the JSON context block.
_RECORD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "exc_info",
        "exc_text",
        "stack_info",
        "taskName",
    }
)

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class StructuredJSONFormatter(logging.Formatter):
    """Formatter that emits one JSON object per record.

    Shape:
    {
        "level": "WARNING",
        "message": "...",
        "timestamp": "2026-01-29T12:00:00+00:00",
        "context": {"logger_name": "...", "function": "...", "line": 42, ...extra...}
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        context: dict[str, Any] = {
            "logger_name": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "thread_name": record.threadName,
            "process": record.process,
        }

        if record.exc_info and record.exc_info[0] is not None:
            context["error_type"] = record.exc_info[0].__name__
            context["error_message"] = str(record.exc_info[1])
            context["stack_trace"] = record.exc_text or self.formatException(record.exc_info)

        # Extra fields from LoggerAdapter or logger.x(..., extra={...})
        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                context[key] = value

        entry = {
            "level": record.levelname,
            "message": record.getMessage(),
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "context": context,
        }
        return json.dumps(entry, default=str)


def configure_logging(
    level: str = "INFO",
    format_string: str | None = None,
    filename: str | None = None,
    structured: bool = False,
) -> None:
    """Configure application-wide logging.

    Safe to call more than once; the root logger is reconfigured each time.

    Args:
        level: Logging level name (case-insensitive)
        format_string: Text format; ignored when structured=True
        filename: Log file path. If None, logs go to stderr
        structured: Emit JSON lines instead of text

    Example:
        >>> configure_logging(level="DEBUG", structured=True, filename="bundlr.jsonl")
    """
    handler: logging.Handler
    if filename:
        handler = logging.FileHandler(filename, encoding="utf-8")
    else:
        # stdout is reserved for command output (rich console)
        handler = logging.StreamHandler(sys.stderr)

    formatter: logging.Formatter
    if structured:
        formatter = StructuredJSONFormatter()
    else:
        formatter = logging.Formatter(format_string or DEFAULT_FORMAT)
    handler.setFormatter(formatter)

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        handlers=[handler],
        force=True,
    )
    logging.getLogger("psutil").setLevel(logging.ERROR)


def get_logger(name: str, **kwargs: Any) -> logging.Logger | logging.LoggerAdapter:
    """Get a logger, wrapped in a LoggerAdapter when context is given.

    Args:
        name: Logger name (usually __name__)
        **kwargs: Context attached to every record (e.g. package="Contoso.App")

    Returns:
        Logger instance, or LoggerAdapter if context provided
    """
    logger = logging.getLogger(name)
    if kwargs:
        return logging.LoggerAdapter(logger, kwargs)
    return logger


@contextmanager
def log_duration(
    logger: logging.Logger | logging.LoggerAdapter, label: str, level: int = logging.DEBUG
) -> Iterator[None]:
    """Log how long the wrapped block took, including when it raises."""
    start = time.perf_counter()
    try:
        yield
    finally:
        logger.log(level, f"{label} took {time.perf_counter() - start:.3f}s")
