"""
Custom Exceptions for Toolgate
==============================

Structured error handling lets the coordination endpoint and the approval
gates react to failures by type instead of parsing strings.

Error Codes:
- 1xxx: Client errors (malformed requests, unknown approvals)
- 3xxx: Resource errors (coordinator unreachable, port unavailable)
- 4xxx: Execution errors (notification delivery)
- 5xxx: System errors (internal, configuration)
"""

from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Structured error codes for user-friendly messages"""

    # 1xxx: Client Errors
    VALIDATION_ERROR = 1001
    APPROVAL_NOT_FOUND = 1002
    APPROVAL_ALREADY_RESOLVED = 1003

    # 3xxx: Resource Errors
    COORDINATOR_UNAVAILABLE = 3001
    PORT_IN_USE = 3002

    # 4xxx: Execution Errors
    NOTIFICATION_FAILED = 4001

    # 5xxx: System Errors
    INTERNAL_ERROR = 5001
    CONFIGURATION_ERROR = 5003


class ToolgateError(Exception):
    """Base exception for all Toolgate errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for structured logging"""
        return {
            'error_type': self.__class__.__name__,
            'error_code': int(self.error_code),
            'message': self.message,
            'details': self.details
        }

    def user_message(self) -> str:
        """Get user-friendly error message based on error code"""
        code_messages = {
            ErrorCode.VALIDATION_ERROR: "Invalid request",
            ErrorCode.APPROVAL_NOT_FOUND: "Approval not found",
            ErrorCode.APPROVAL_ALREADY_RESOLVED: "Approval already processed",
            ErrorCode.COORDINATOR_UNAVAILABLE: "Approval coordinator unavailable",
            ErrorCode.PORT_IN_USE: "Approval coordinator port unavailable",
            ErrorCode.NOTIFICATION_FAILED: "Could not deliver approval request",
            ErrorCode.INTERNAL_ERROR: "Internal server error",
            ErrorCode.CONFIGURATION_ERROR: "Configuration error",
        }
        return f"Error {self.error_code}: {code_messages.get(self.error_code, self.message)}"


class ValidationError(ToolgateError):
    """Raised when a registration request is malformed"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.VALIDATION_ERROR, details)


class ApprovalNotFoundError(ToolgateError):
    """Raised when an approval id is unknown, cleaned up, or swept"""

    def __init__(self, approval_id: str, details: dict[str, Any] | None = None):
        super().__init__("Approval not found", ErrorCode.APPROVAL_NOT_FOUND, details)
        self.approval_id = approval_id


class ApprovalAlreadyResolvedError(ToolgateError):
    """Raised when a resolve arrives after the approval left pending"""

    def __init__(self, approval_id: str, details: dict[str, Any] | None = None):
        super().__init__(
            "Approval already processed", ErrorCode.APPROVAL_ALREADY_RESOLVED, details
        )
        self.approval_id = approval_id


class CoordinatorUnavailableError(ToolgateError):
    """Raised when the coordination endpoint cannot be reached"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.COORDINATOR_UNAVAILABLE, details)


class PortInUseError(ToolgateError):
    """Raised when the coordinator cannot bind its configured port"""

    def __init__(self, host: str, port: int, details: dict[str, Any] | None = None):
        super().__init__(
            f"Port {port} on {host} is already in use. Cannot start approval coordinator.",
            ErrorCode.PORT_IN_USE,
            details,
        )
        self.host = host
        self.port = port


class NotificationError(ToolgateError):
    """Raised when the notification sink cannot deliver an approval request"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.NOTIFICATION_FAILED, details)


class ConfigurationError(ToolgateError):
    """Raised when settings are missing or invalid"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)
