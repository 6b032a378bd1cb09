"""
app/core/logging.py

Purpose: Logging configuration

- Standardizes log format
- Controls log levels (verbosity flag overrides LOG_LEVEL)
- Structured JSON logging in production, coloured output otherwise
- Context tracking (order_id, client_id, staff_id)
"""

import logging
import sys
import json
from datetime import datetime
from contextvars import ContextVar
from typing import Any, Dict, Optional
from app.core.config import settings


CONTEXT_FIELDS = ("order_id", "client_id", "staff_id", "referrer_id")


def context_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """
    Context attached to a record: LogContext values first, then any
    `extra=` values passed to the logging call, which take precedence.
    """
    fields = dict(getattr(record, "log_context", None) or {})
    for field in CONTEXT_FIELDS:
        if hasattr(record, field):
            fields[field] = getattr(record, field)
    return fields


class StructuredFormatter(logging.Formatter):
    """
    Custom formatter for structured JSON logging in production.
    Makes logs easily parseable by monitoring tools.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        log_data.update(context_fields(record))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class DevelopmentFormatter(logging.Formatter):
    """
    Human-readable formatter for development environment.
    """

    def format(self, record: logging.LogRecord) -> str:
        colors = {
            "DEBUG": "\033[35m",      # Magenta
            "INFO": "\033[34m",       # Blue
            "WARNING": "\033[33m",    # Yellow
            "ERROR": "\033[31m",      # Red
            "CRITICAL": "\033[41m",   # Red background
        }
        reset = "\033[0m"

        color = colors.get(record.levelname, reset)

        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")

        message = f"[{timestamp}] {color}{record.levelname:<8}{reset} {record.name}: {record.getMessage()}"

        context_parts = [f"{field}={value}" for field, value in context_fields(record).items()]
        if context_parts:
            message += f" [{', '.join(context_parts)}]"

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


def setup_logging(verbose: bool = False, sink: Optional[str] = None):
    """
    Configures application-wide logging with appropriate formatters.
    Uses JSON format in production, human-readable in development.

    Args:
        verbose: Force DEBUG level regardless of LOG_LEVEL
        sink: "stdout" or a file path; defaults to LOG_SINK
    """
    level_name = "DEBUG" if verbose else settings.LOG_LEVEL.upper()
    log_level = getattr(logging, level_name, logging.INFO)

    sink = sink or settings.LOG_SINK
    if sink == "stdout":
        handler = logging.StreamHandler(sys.stdout)
    else:
        handler = logging.FileHandler(sink, encoding="utf-8")

    if settings.is_production:
        formatter = StructuredFormatter()
    else:
        formatter = DevelopmentFormatter()

    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # Set third-party loggers to WARNING to reduce noise
    for noisy in ("httpx", "telegram", "motor", "pymongo", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger = logging.getLogger("sarafan")
    logger.info(
        "Logging configured",
        extra={
            "environment": settings.ENVIRONMENT,
            "log_level": level_name,
            "sink": sink,
        }
    )

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(f"sarafan.{name}")


_log_context: ContextVar[Dict[str, Any]] = ContextVar("sarafan_log_context", default={})
_base_factory = logging.getLogRecordFactory()


def _context_record_factory(*args, **kwargs):
    # Stored under one attribute so `extra=` keys never collide with it
    record = _base_factory(*args, **kwargs)
    record.log_context = _log_context.get()
    return record


logging.setLogRecordFactory(_context_record_factory)


class LogContext:
    """
    Context manager for adding structured context to logs.

    Context is kept in a ContextVar, so concurrent coroutines each see
    only their own fields.

    Usage:
        with LogContext(order_id="K3M9Q2ZX", staff_id=99):
            logger.info("Claiming order")
    """

    def __init__(self, **kwargs):
        self.context = kwargs
        self._token = None

    def __enter__(self):
        merged = {**_log_context.get(), **self.context}
        self._token = _log_context.set(merged)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        _log_context.reset(self._token)
