"""
Structured logging configuration.

This module provides:
- JSONFormatter for structured JSON logging
- ContextualLogger to attach fields (sweep run id, owner id) to every record
- setup_json_logging / setup_text_logging helpers used at application start
"""
import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# Attributes every LogRecord carries; anything else came in through `extra`.
_RESERVED_ATTRS = frozenset({
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'pathname', 'process', 'processName', 'relativeCreated',
    'thread', 'threadName', 'exc_info', 'exc_text', 'stack_info',
    'taskName', 'message',
})


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Example output:
    {
        "timestamp": "2026-01-19T03:00:01.123456+00:00",
        "level": "INFO",
        "logger": "vault.lifecycle.sweeper",
        "message": "Trash sweep finished",
        "run_id": "3f1c...",
        "purged": 12,
        "failed": 1
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
            "thread_name": record.threadName,
        }

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        if record.stack_info:
            log_entry["stack_info"] = record.stack_info

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_entry[key] = self._serialize_value(value)

        return json.dumps(log_entry, default=str, ensure_ascii=False)

    def _serialize_value(self, value: Any) -> Any:
        """Make common non-JSON types printable."""
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, bytes):
            try:
                return value.decode('utf-8')
            except UnicodeDecodeError:
                return f"<binary data: {len(value)} bytes>"
        if isinstance(value, Exception):
            return {"type": type(value).__name__, "message": str(value)}
        return value


class ContextualLogger:
    """
    Wrapper for logger that adds contextual information to all log messages.

    Usage:
        logger = ContextualLogger(logging.getLogger(__name__))
        logger.set_context(run_id="abc123", trigger="scheduled")
        logger.info("Purging batch")  # carries run_id and trigger
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self.context: Dict[str, Any] = {}

    def set_context(self, **kwargs):
        self.context.update(kwargs)

    def clear_context(self):
        self.context.clear()

    def _log_with_context(self, level: int, msg: str, *args, **kwargs):
        extra = dict(kwargs.get('extra') or {})
        extra.update(self.context)
        kwargs['extra'] = extra
        self.logger.log(level, msg, *args, **kwargs)

    def debug(self, msg: str, *args, **kwargs):
        self._log_with_context(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._log_with_context(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._log_with_context(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._log_with_context(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        kwargs['exc_info'] = True
        self._log_with_context(logging.ERROR, msg, *args, **kwargs)


def setup_json_logging(
    level: str = "INFO",
    logger_name: Optional[str] = None
) -> logging.Logger:
    """
    Setup JSON logging for a logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logger_name: Name of logger to configure (None for root logger)

    Returns:
        Configured logger with JSON formatter
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(getattr(logging, level.upper()))
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(JSONFormatter())
    logger.addHandler(console_handler)

    if logger_name is not None:
        logger.propagate = False

    return logger


def setup_text_logging(level: str = "INFO") -> None:
    """Plain-text logging for local development."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def configure_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Configure the root logger from LOG_LEVEL / LOG_FORMAT."""
    if fmt == "json":
        setup_json_logging(level)
    else:
        setup_text_logging(level)


def get_logger(name: str, with_context: bool = False):
    """
    Get logger with optional contextual logging support.

    Args:
        name: Logger name (typically __name__)
        with_context: Whether to return ContextualLogger wrapper
    """
    logger = logging.getLogger(name)

    if with_context:
        return ContextualLogger(logger)

    return logger
