"""
Structured Logging Configuration Module

JSON (or plain text) log lines for the back-office. Each request gets a
correlation id held in a context variable, so every line logged while
serving it can be traced back to that request.
"""

import contextvars
import logging
import json
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional


CORRELATION_HEADER = "X-Request-ID"

_correlation_id = contextvars.ContextVar('correlation_id', default=None)


def get_correlation_id() -> Optional[str]:
    """Correlation id of the request being served, if any"""
    return _correlation_id.get()


def new_correlation_id() -> str:
    return uuid.uuid4().hex


@contextmanager
def correlation_context(correlation_id: str):
    """Tag every log line emitted inside the block with `correlation_id`"""
    token = _correlation_id.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _correlation_id.reset(token)


class JSONFormatter(logging.Formatter):
    """One JSON object per log line; unset fields are left out"""

    FIELDS = ('user_id', 'action', 'resource', 'extra')

    def format(self, record):
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "message": record.getMessage(),
            "correlation_id": getattr(record, 'correlation_id', None) or get_correlation_id(),
        }
        for name in self.FIELDS:
            log_entry[name] = getattr(record, name, None)

        log_entry = {k: v for k, v in log_entry.items() if v is not None}

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class TextFormatter(logging.Formatter):
    """Plain lines for local runs, with the correlation id when there is one"""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record):
        line = super().format(record)
        correlation_id = getattr(record, 'correlation_id', None) or get_correlation_id()
        return f"{line} [{correlation_id}]" if correlation_id else line


def setup_logging(level: str = "INFO", logger_name: str = "backoffice",
                  log_format: str = "json", log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the back-office logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logger_name: Name of the logger
        log_format: "json" for structured output, "text" for plain lines
        log_file: Optional file path; stderr when None

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler()
    handler.setFormatter(TextFormatter() if log_format == "text" else JSONFormatter())

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False

    return logger


def get_logger(name: str = "backoffice") -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, correlation_id: Optional[str] = None,
               extra: Optional[dict] = None, exc_info=None):
    """
    Log an action with structured data.

    Args:
        logger: Logger instance
        level: Log level (info, warning, error, etc.)
        message: Log message
        user_id: ID of the console user performing the action
        action: Action being performed (export, filter_rejected, query_failed, ...)
        resource: Screen or entity acted upon
        correlation_id: Overrides the id of the current request
        extra: Additional structured data
        exc_info: Exception info tuple to attach, as for Logger.error
    """
    levelno = getattr(logging, level.upper())
    if not logger.isEnabledFor(levelno):
        return

    record = logger.makeRecord(
        logger.name, levelno, __name__, 0, message, (), exc_info
    )

    fields = {
        'user_id': user_id,
        'action': action,
        'resource': resource,
        'correlation_id': correlation_id or get_correlation_id(),
        'extra': extra,
    }
    for name, value in fields.items():
        if value:
            setattr(record, name, value)

    logger.handle(record)
