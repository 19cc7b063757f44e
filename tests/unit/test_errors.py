"""Tests for error handling utilities."""

import errno

from deploy_hooks.errors import (
    ERROR_HTTP_MAP,
    RETRYABLE,
    AuthenticationError,
    ConfigError,
    DeployHooksError,
    DispatchError,
    build_error_body,
    http_status_for,
    is_retryable,
)
from deploy_hooks.models import ErrorBody


class TestErrorHandling:
    def test_http_status_for_known_codes(self):
        assert http_status_for("INVALID_REQUEST") == 400
        assert http_status_for("UNAUTHORIZED") == 401
        assert http_status_for("DISPATCH_TIMEOUT") == 500
        assert http_status_for("BAD_PIPE") == 500
        assert http_status_for("INTERNAL_ERROR") == 500

    def test_http_status_for_unknown_code(self):
        assert http_status_for("SOME_NEW_ERROR") == 500

    def test_retry_guidance(self):
        assert is_retryable("DISPATCH_TIMEOUT") is True
        assert is_retryable("BAD_PIPE") is True
        assert is_retryable("UNAUTHORIZED") is False
        assert is_retryable("UNKNOWN_ERROR") is False

    def test_error_mapping_completeness(self):
        assert set(ERROR_HTTP_MAP) == set(RETRYABLE)

    def test_build_error_body(self):
        body = build_error_body(request_id="req-1", code="DISPATCH_TIMEOUT", message="slow pipe")

        assert isinstance(body, ErrorBody)
        assert body.error_code == "DISPATCH_TIMEOUT"
        assert body.message == "slow pipe"
        assert body.request_id == "req-1"
        assert body.retryable is True

    def test_build_error_body_without_message(self):
        body = build_error_body(request_id=None, code="UNAUTHORIZED")

        assert body.message is None
        assert body.request_id is None
        assert body.retryable is False


class TestExceptions:
    def test_default_codes(self):
        assert ConfigError("x").error_code == "CONFIG_INVALID"
        assert AuthenticationError().error_code == "UNAUTHORIZED"
        assert DispatchError("x").error_code == "BAD_PIPE"
        assert DeployHooksError("x").error_code == "INTERNAL_ERROR"

    def test_explicit_code_wins(self):
        exc = ConfigError("gone", error_code="CONFIG_NOT_FOUND")

        assert exc.error_code == "CONFIG_NOT_FOUND"
        assert str(exc) == "CONFIG_NOT_FOUND: gone"

    def test_to_dict(self):
        exc = AuthenticationError("unknown client", details={"client": "ci"})

        assert exc.to_dict() == {
            "error_code": "UNAUTHORIZED",
            "message": "unknown client",
            "details": {"client": "ci"},
        }

    def test_dispatch_timeout_factory(self):
        exc = DispatchError.timeout(1.0)

        assert exc.error_code == "DISPATCH_TIMEOUT"
        assert "1s" in exc.message
        assert exc.details == {"timeout_seconds": 1.0}

    def test_dispatch_bad_pipe_factory(self):
        exc = DispatchError.bad_pipe(FileNotFoundError(errno.ENOENT, "No such file or directory"))

        assert exc.error_code == "BAD_PIPE"
        assert "No such file or directory" in exc.message
        assert exc.details == {"errno": errno.ENOENT}

    def test_all_errors_share_base(self):
        for exc_type in (ConfigError, AuthenticationError, DispatchError):
            assert issubclass(exc_type, DeployHooksError)
