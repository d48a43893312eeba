"""Unit tests for ServiceError hierarchy."""

import grpc
import pytest

from callgate_core.runtime.errors import (
    CallCancelledError,
    ConfigurationError,
    CredentialsUnavailableError,
    DeadlineExceededError,
    ErrorCode,
    RetryableError,
    ServiceError,
    TerminalError,
    status_code_of,
)
from tests.callgate_core.fakes import FakeRpcError


class TestServiceError:
    """Tests for ServiceError base class."""

    def test_create_with_required_fields(self):
        """Should create error with required fields."""
        error = ServiceError(
            code="TEST_ERROR",
            message_safe="Something went wrong",
        )

        assert error.code == "TEST_ERROR"
        assert error.message_safe == "Something went wrong"
        assert error.message_debug is None
        assert error.status == grpc.StatusCode.UNKNOWN
        assert error.cause is None
        assert error.debug_id is not None  # Auto-generated

    def test_create_with_all_fields(self):
        """Should create error with all fields."""
        cause = ValueError("underlying error")
        error = ServiceError(
            code="FULL_ERROR",
            message_safe="Safe message",
            message_debug="Detailed debug info",
            status=grpc.StatusCode.INTERNAL,
            cause=cause,
            debug_id="custom-id",
        )

        assert error.code == "FULL_ERROR"
        assert error.message_debug == "Detailed debug info"
        assert error.status == grpc.StatusCode.INTERNAL
        assert error.cause is cause
        assert error.debug_id == "custom-id"

    def test_str_representation(self):
        """Should show code and safe message only."""
        error = ServiceError(code="TEST", message_safe="Test message", message_debug="secret")

        assert str(error) == "[TEST] Test message"

    def test_repr_includes_status(self):
        error = ServiceError(code="TEST", message_safe="msg", status=grpc.StatusCode.ABORTED, debug_id="abc")

        assert repr(error) == "ServiceError(code='TEST', message_safe='msg', status=ABORTED, debug_id='abc')"

    def test_to_dict_excludes_debug(self):
        """to_dict should not include debug info."""
        error = ServiceError(
            code="TEST",
            message_safe="Safe",
            message_debug="Sensitive debug info",
            status=grpc.StatusCode.UNAVAILABLE,
            debug_id="abc123",
        )

        assert error.to_dict() == {
            "code": "TEST",
            "message": "Safe",
            "status": "UNAVAILABLE",
            "debug_id": "abc123",
        }

    def test_is_exception(self):
        """Should be raisable as exception."""
        with pytest.raises(ServiceError) as exc_info:
            raise ServiceError(code="RAISED", message_safe="Raised error")

        assert exc_info.value.code == "RAISED"


class TestErrorSubclasses:
    """Tests for the concrete error types and their status codes."""

    def test_configuration_error_is_value_error(self):
        error = ConfigurationError("scopes must not be None")

        assert isinstance(error, ValueError)
        assert isinstance(error, ServiceError)
        assert error.code == ErrorCode.INVALID_CONFIGURATION
        assert error.status == grpc.StatusCode.INVALID_ARGUMENT

    def test_retryable_error_defaults_to_unavailable(self):
        error = RetryableError(code=ErrorCode.CONNECTION_ERROR, message_safe="Connection reset")

        assert error.status == grpc.StatusCode.UNAVAILABLE

    def test_terminal_error_defaults_to_failed_precondition(self):
        error = TerminalError(code="NOT_FOUND", message_safe="Missing")

        assert error.status == grpc.StatusCode.FAILED_PRECONDITION

    def test_deadline_exceeded_error(self):
        cause = RetryableError(code=ErrorCode.SERVICE_UNAVAILABLE, message_safe="down")
        error = DeadlineExceededError(cause=cause)

        assert error.code == ErrorCode.DEADLINE_EXCEEDED
        assert error.status == grpc.StatusCode.DEADLINE_EXCEEDED
        assert error.cause is cause

    def test_call_cancelled_error(self):
        error = CallCancelledError()

        assert error.code == ErrorCode.CANCELLED
        assert error.status == grpc.StatusCode.CANCELLED
        assert str(error) == "[CANCELLED] Call cancelled"

    def test_credentials_unavailable_error(self):
        error = CredentialsUnavailableError("No credentials", message_debug="/missing.pem")

        assert error.code == ErrorCode.CREDENTIALS_UNAVAILABLE
        assert error.status == grpc.StatusCode.UNAUTHENTICATED
        assert error.message_debug == "/missing.pem"


class TestStatusCodeOf:
    """Tests for mapping failures to gRPC status codes."""

    def test_service_error_uses_its_status(self):
        error = RetryableError(code="X", message_safe="x", status=grpc.StatusCode.RESOURCE_EXHAUSTED)

        assert status_code_of(error) == grpc.StatusCode.RESOURCE_EXHAUSTED

    def test_rpc_error_uses_code(self):
        assert status_code_of(FakeRpcError(grpc.StatusCode.UNAVAILABLE)) == grpc.StatusCode.UNAVAILABLE

    def test_rpc_error_without_code_maps_to_none(self):
        assert status_code_of(grpc.RpcError()) is None

    def test_other_exceptions_map_to_none(self):
        assert status_code_of(ValueError("bad")) is None
