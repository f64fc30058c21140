"""
Structured Logging with Trace IDs
=================================

Provides JSON-structured logging with request tracing. Every log line
emitted while an approval flow is running carries that approval's id as
its trace id, so a single permission prompt can be followed from
registration through the Slack round-trip to cleanup.
"""

from __future__ import annotations

import json
import logging
import re
import sys
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from toolgate.config.settings import LoggingConfig

# Context variable to store trace_id for current approval flow
_trace_id_var: ContextVar[str | None] = ContextVar('trace_id', default=None)

_SECRET_PATTERNS = re.compile(
    r"(xox[abprs]-[A-Za-z0-9-]+|xapp-[A-Za-z0-9-]+|sk-ant-[A-Za-z0-9_-]+|"
    r"Bearer\s+[A-Za-z0-9._~+/=-]+)",
    re.IGNORECASE,
)


_PRERENDERED_ATTR = "structured"

# Attributes every LogRecord carries; anything else on a record came from extra=
_RESERVED_RECORD_ATTRS = frozenset(
    logging.makeLogRecord({}).__dict__
) | {"message", "asctime", "trace_id", _PRERENDERED_ATTR}


def _redact_secrets(text: str) -> str:
    return _SECRET_PATTERNS.sub("[REDACTED]", text)


def current_trace_id() -> str | None:
    return _trace_id_var.get()


class StructuredLogger:
    """
    Structured logger that outputs JSON logs with trace IDs

    Example output:
    {
        "timestamp": "2026-10-18T10:30:45.123Z",
        "level": "INFO",
        "trace_id": "approval_1760783445123_k3j9x0a1b",
        "component": "ApprovalGate",
        "message": "Sent permission request",
        "tool_name": "Bash",
        "channel": "C0123456"
    }
    """

    def __init__(self, component: str, logger: logging.Logger | None = None) -> None:
        """
        Initialize structured logger

        Args:
            component: Component name (e.g., 'Coordinator', 'ApprovalGate')
            logger: Optional existing logger (creates new if not provided)
        """
        self.component = component
        self.logger = logger or logging.getLogger(component)

    def _log(self, level: str, message: str, **kwargs) -> None:
        trace_id = _trace_id_var.get()

        log_entry = {
            'timestamp': datetime.now(tz=UTC).isoformat(),
            'level': level,
            'component': self.component,
            'message': _redact_secrets(message),
        }

        if trace_id:
            log_entry['trace_id'] = trace_id

        # Redact string values; everything else must be JSON-serializable or is stringified
        for k, v in kwargs.items():
            log_entry[k] = _redact_secrets(v) if isinstance(v, str) else v

        json_log = _redact_secrets(json.dumps(log_entry, default=str))

        log_method = getattr(self.logger, level.lower())
        log_method(json_log, extra={_PRERENDERED_ATTR: True})

    def debug(self, message: str, **kwargs) -> None:
        """Log debug message"""
        self._log('DEBUG', message, **kwargs)

    def info(self, message: str, **kwargs) -> None:
        """Log info message"""
        self._log('INFO', message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        """Log warning message"""
        self._log('WARNING', message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        """Log error message"""
        self._log('ERROR', message, **kwargs)


class TraceContext:
    """
    Context manager for setting trace_id for one approval flow

    Usage:
        with TraceContext(approval_id):
            # All structured logs within this context include the approval id
            logger.info("Registered approval")
    """

    def __init__(self, trace_id: str | None = None) -> None:
        self.trace_id = trace_id or self._generate_trace_id()
        self.token = None

    def __enter__(self) -> str:
        self.token = _trace_id_var.set(self.trace_id)
        return self.trace_id

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        _trace_id_var.reset(self.token)

    @staticmethod
    def _generate_trace_id() -> str:
        return str(uuid.uuid4())[:8]


_NO_TRACE = "-"


class TraceIdFilter(logging.Filter):
    """Stamp every record with the trace id of the approval flow it was logged in."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, 'trace_id', None):
            record.trace_id = current_trace_id() or _NO_TRACE
        return True


class JsonLogFormatter(logging.Formatter):
    """
    Render standard library records in the StructuredLogger envelope.

    Fields passed through ``extra=`` become top-level keys. Records that
    StructuredLogger already rendered are passed through unchanged.
    """

    def format(self, record: logging.LogRecord) -> str:
        if getattr(record, _PRERENDERED_ATTR, False):
            return record.getMessage()

        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            'level': record.levelname,
            'component': record.name,
            'message': record.getMessage(),
        }

        trace_id = getattr(record, 'trace_id', None)
        if trace_id and trace_id != _NO_TRACE:
            log_entry['trace_id'] = trace_id

        for k, v in record.__dict__.items():
            if k not in _RESERVED_RECORD_ATTRS and not k.startswith('_'):
                log_entry[k] = v

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return _redact_secrets(json.dumps(log_entry, default=str))


def get_logger(component: str) -> StructuredLogger:
    """
    Get a structured logger for a component

    Args:
        component: Component name

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(component)


def configure_logging(config: LoggingConfig, stream: TextIO | None = None) -> None:
    """
    Install a single handler on the root logger, writing to stderr by default.

    stdout is never used: the permission worker speaks MCP over stdio.
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.addFilter(TraceIdFilter())
    if config.format == "json":
        handler.setFormatter(JsonLogFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s [%(trace_id)s]: %(message)s")
        )

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(config.level)
