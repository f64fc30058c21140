"""
Core building blocks shared by every Toolgate component:
the error taxonomy and structured logging.
"""

from .exceptions import (
    ApprovalAlreadyResolvedError,
    ApprovalNotFoundError,
    ConfigurationError,
    CoordinatorUnavailableError,
    ErrorCode,
    NotificationError,
    PortInUseError,
    ToolgateError,
    ValidationError,
)
from .structured_logger import JsonLogFormatter, StructuredLogger, TraceContext, TraceIdFilter, get_logger

__all__ = [
    'ApprovalAlreadyResolvedError',
    'ApprovalNotFoundError',
    'ConfigurationError',
    'CoordinatorUnavailableError',
    'ErrorCode',
    'NotificationError',
    'PortInUseError',
    'ToolgateError',
    'ValidationError',
    'JsonLogFormatter',
    'StructuredLogger',
    'TraceContext',
    'TraceIdFilter',
    'get_logger',
]
