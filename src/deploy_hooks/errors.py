"""
Canonical error codes and exception types for the deploy hooks service.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from .models import ErrorBody

ERROR_HTTP_MAP = {
    "INVALID_REQUEST": 400,
    "UNAUTHORIZED": 401,
    "DISPATCH_TIMEOUT": 500,
    "BAD_PIPE": 500,
    "INTERNAL_ERROR": 500,
}

# Retry guidance (true means client may retry safely)
RETRYABLE = {
    "INVALID_REQUEST": False,
    "UNAUTHORIZED": False,
    "DISPATCH_TIMEOUT": True,
    "BAD_PIPE": True,
    "INTERNAL_ERROR": False,
}


def http_status_for(code: str) -> int:
    return int(ERROR_HTTP_MAP.get(code, 500))


def is_retryable(code: str) -> bool:
    return bool(RETRYABLE.get(code, False))


def build_error_body(request_id: str | None, code: str, message: str | None = None) -> ErrorBody:
    return ErrorBody(
        error_code=code,
        message=message,
        request_id=request_id,
        retryable=is_retryable(code),
    )


class DeployHooksError(Exception):
    """Base exception for all deploy hooks errors."""

    default_code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"{self.error_code}: {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}'"
            f")"
        )


class ConfigError(DeployHooksError):
    """Raised when the configuration file is missing or unusable."""

    default_code = "CONFIG_INVALID"


class AuthenticationError(DeployHooksError):
    """Raised when a webhook request cannot be authenticated."""

    default_code = "UNAUTHORIZED"

    def __init__(self, message: str = "Authentication failed", **kwargs: Any):
        super().__init__(message, **kwargs)


class DispatchError(DeployHooksError):
    """Raised when a command could not be written to the command pipe.

    ``error_code`` is ``DISPATCH_TIMEOUT`` when the pipe did not accept the
    command in time and ``BAD_PIPE`` for any other I/O failure.
    """

    default_code = "BAD_PIPE"

    @classmethod
    def timeout(cls, seconds: float) -> "DispatchError":
        return cls(
            f"command pipe did not accept the command within {seconds:g}s",
            error_code="DISPATCH_TIMEOUT",
            details={"timeout_seconds": seconds},
        )

    @classmethod
    def bad_pipe(cls, exc: OSError) -> "DispatchError":
        return cls(
            f"unable to write to command pipe: {exc.strerror or exc}",
            error_code="BAD_PIPE",
            details={"errno": exc.errno},
        )

