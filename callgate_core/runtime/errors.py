"""
Standardized error model for RPC calls.

This module defines the failures the call bridge and channel pool raise
themselves, and the mapping from any failure to a transport-level status
code that retry policies classify on.
"""

from __future__ import annotations

import uuid
from typing import Any

import grpc


class ServiceError(Exception):
    """Standardized RPC error carrying a transport status code.

    ServiceError carries structured information about failures:
    - code: Machine-readable error code (e.g., "DEADLINE_EXCEEDED")
    - message_safe: Human-readable message safe for logs/users
    - message_debug: Detailed debug info (not logged in production)
    - status: The gRPC status code the failure corresponds to
    - cause: The underlying exception, if any
    - debug_id: Unique ID for support correlation

    Attributes:
        code: Error code for programmatic handling.
        message_safe: Safe message for logging and user display.
        message_debug: Optional detailed message for debugging.
        status: gRPC status code used for retry classification.
        cause: Optional underlying exception.
        debug_id: Unique identifier for support tickets.
    """

    def __init__(
        self,
        code: str,
        message_safe: str,
        message_debug: str | None = None,
        status: grpc.StatusCode = grpc.StatusCode.UNKNOWN,
        cause: BaseException | None = None,
        debug_id: str | None = None,
    ):
        """Initialize a ServiceError.

        Args:
            code: Machine-readable error code.
            message_safe: Human-readable message safe for logs.
            message_debug: Optional detailed debug message.
            status: gRPC status code for the failure.
            cause: Optional underlying exception.
            debug_id: Optional correlation ID (auto-generated if None).
        """
        super().__init__(message_safe)
        self.code = code
        self.message_safe = message_safe
        self.message_debug = message_debug
        self.status = status
        self.cause = cause
        self.debug_id = debug_id or str(uuid.uuid4())[:8]

    def __str__(self) -> str:
        return f"[{self.code}] {self.message_safe}"

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"message_safe={self.message_safe!r}, "
            f"status={self.status.name}, "
            f"debug_id={self.debug_id!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for structured logging.

        Returns:
            Dictionary with error details (excludes debug info).
        """
        return {
            "code": self.code,
            "message": self.message_safe,
            "status": self.status.name,
            "debug_id": self.debug_id,
        }


class ConfigurationError(ServiceError, ValueError):
    """Invalid construction input. Raised immediately and never retried."""

    def __init__(self, message_safe: str, message_debug: str | None = None):
        super().__init__(
            code=ErrorCode.INVALID_CONFIGURATION,
            message_safe=message_safe,
            message_debug=message_debug,
            status=grpc.StatusCode.INVALID_ARGUMENT,
        )


class RetryableError(ServiceError):
    """Transient failure raised by a transport.

    Use this for failures such as:
    - Connection resets
    - Temporary service unavailability
    - Resource exhaustion on the server
    """

    def __init__(
        self,
        code: str,
        message_safe: str,
        message_debug: str | None = None,
        status: grpc.StatusCode = grpc.StatusCode.UNAVAILABLE,
        cause: BaseException | None = None,
        debug_id: str | None = None,
    ):
        super().__init__(
            code=code,
            message_safe=message_safe,
            message_debug=message_debug,
            status=status,
            cause=cause,
            debug_id=debug_id,
        )


class TerminalError(ServiceError):
    """Permanent failure raised by a transport.

    Use this for failures such as:
    - Invalid requests
    - Authorization failures
    - Missing resources
    """

    def __init__(
        self,
        code: str,
        message_safe: str,
        message_debug: str | None = None,
        status: grpc.StatusCode = grpc.StatusCode.FAILED_PRECONDITION,
        cause: BaseException | None = None,
        debug_id: str | None = None,
    ):
        super().__init__(
            code=code,
            message_safe=message_safe,
            message_debug=message_debug,
            status=status,
            cause=cause,
            debug_id=debug_id,
        )


class DeadlineExceededError(ServiceError):
    """The merged deadline passed before the call could complete."""

    def __init__(
        self,
        message_safe: str = "Deadline exceeded",
        cause: BaseException | None = None,
    ):
        super().__init__(
            code=ErrorCode.DEADLINE_EXCEEDED,
            message_safe=message_safe,
            status=grpc.StatusCode.DEADLINE_EXCEEDED,
            cause=cause,
        )


class CallCancelledError(ServiceError):
    """The cancellation signal fired before the call could complete."""

    def __init__(
        self,
        message_safe: str = "Call cancelled",
        cause: BaseException | None = None,
    ):
        super().__init__(
            code=ErrorCode.CANCELLED,
            message_safe=message_safe,
            status=grpc.StatusCode.CANCELLED,
            cause=cause,
        )


class CredentialsUnavailableError(ServiceError):
    """No ambient credential could be built."""

    def __init__(
        self,
        message_safe: str,
        message_debug: str | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(
            code=ErrorCode.CREDENTIALS_UNAVAILABLE,
            message_safe=message_safe,
            message_debug=message_debug,
            status=grpc.StatusCode.UNAUTHENTICATED,
            cause=cause,
        )


# Common error codes
class ErrorCode:
    """Standard error codes for common failure scenarios."""

    # Configuration
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"

    # Call lifecycle
    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"
    CANCELLED = "CANCELLED"

    # Network/connectivity
    CONNECTION_ERROR = "CONNECTION_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"

    # Authentication
    CREDENTIALS_UNAVAILABLE = "CREDENTIALS_UNAVAILABLE"

    # Internal
    INTERNAL_ERROR = "INTERNAL_ERROR"


def status_code_of(exc: BaseException) -> grpc.StatusCode | None:
    """Return the gRPC status code a failure corresponds to.

    Args:
        exc: Any exception raised by a raw invocation function.

    Returns:
        The status code, or None if the failure carries none.
    """
    if isinstance(exc, ServiceError):
        return exc.status
    if isinstance(exc, grpc.RpcError):
        code = getattr(exc, "code", None)
        if callable(code):
            status = code()
            if isinstance(status, grpc.StatusCode):
                return status
    return None
