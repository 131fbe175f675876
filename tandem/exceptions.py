"""
Exception hierarchy for Tandem.

This module defines the error taxonomy surfaced by model adapters, the
conversation context, the tool layer and the agent service. Every error
carries an error code, structured details and an optional cause so that
callers can render a remediation hint or serialize the failure.
"""

from typing import Any
from enum import Enum


class ErrorCode(str, Enum):
    """Failure categories shared by all tandem errors."""

    UNKNOWN = "UNKNOWN"
    CONFIGURATION = "CONFIGURATION"
    CONNECTION = "CONNECTION"
    API = "API"
    AUTHENTICATION = "AUTHENTICATION"
    RATE_LIMIT = "RATE_LIMIT"
    MODEL_UNAVAILABLE = "MODEL_UNAVAILABLE"
    PROTOCOL = "PROTOCOL"
    VALIDATION = "VALIDATION"
    TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
    SECURITY = "SECURITY"
    USER_DENIED = "USER_DENIED"
    ABORTED = "ABORTED"
    STREAMING_IN_PROGRESS = "STREAMING_IN_PROGRESS"


class TandemError(Exception):
    """
    Base exception class for all Tandem errors.

    Parameters
    ----------
    message : str
        Message shown to the user.
    error_code : ErrorCode, default=ErrorCode.UNKNOWN
        Category of the failure.
    details : dict[str, Any] | None, optional
        Structured context attached to the error.
    cause : Exception | None, optional
        Exception this error wraps, if any.

    Attributes
    ----------
    message : str
        The error message.
    error_code : ErrorCode
        Category of the failure.
    details : dict[str, Any]
        Additional error context.
    cause : Exception | None
        Exception this error wraps, if any.

    Examples
    --------
    >>> raise TandemError("Something went wrong")
    >>> raise TandemError(
    ...     "Invalid configuration",
    ...     ErrorCode.CONFIGURATION,
    ...     details={"config_key": "provider"},
    ... )
    """

    default_code: ErrorCode = ErrorCode.UNKNOWN

    def __init__(
        self,
        message: str,
        error_code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message: str = message
        self.error_code: ErrorCode = error_code or self.default_code
        self.details: dict[str, Any] = details or {}
        self.cause: Exception | None = cause

    def __str__(self) -> str:
        parts: list[str] = [f"[{self.error_code.value}] {self.message}"]
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"Details: {detail_str}")
        if self.cause:
            parts.append(f"Caused by: {type(self.cause).__name__}: {self.cause}")
        return " | ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code.value!r}, "
            f"details={self.details!r}, "
            f"cause={self.cause!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Return the error as a plain dictionary.

        Returns
        -------
        dict[str, Any]
            JSON-compatible view of the error, including its cause.
        """
        result: dict[str, Any] = {
            "type": self.__class__.__name__,
            "error_code": self.error_code.value,
            "message": self.message,
            "details": self.details,
        }
        if self.cause:
            result["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause),
            }
        return result


class ConfigurationError(TandemError):
    """
    Raised for bad or missing configuration.

    Parameters
    ----------
    message : str
        Message shown to the user.
    config_key : str | None, optional
        Offending configuration key.
    config_file : str | None, optional
        File the bad value came from.
    details : dict[str, Any] | None, optional
        Structured context attached to the error.
    cause : Exception | None, optional
        Exception this error wraps, if any.

    Examples
    --------
    >>> raise ConfigurationError("Model provider is required", config_key="provider")
    """

    default_code = ErrorCode.CONFIGURATION

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        config_file: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if config_key:
            details["config_key"] = config_key
        if config_file:
            details["config_file"] = config_file
        super().__init__(message, details=details, cause=cause)
        self.config_key: str | None = config_key
        self.config_file: str | None = config_file


class ConnectionError(TandemError):
    """
    Raised for transport-level failures, including timeouts.

    Parameters
    ----------
    message : str
        Message shown to the user.
    endpoint : str | None, optional
        URL that could not be reached.
    details : dict[str, Any] | None, optional
        Structured context attached to the error.
    cause : Exception | None, optional
        Exception this error wraps, if any.
    """

    default_code = ErrorCode.CONNECTION

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if endpoint:
            details["endpoint"] = endpoint
        super().__init__(message, details=details, cause=cause)
        self.endpoint: str | None = endpoint


class APIError(TandemError):
    """
    Raised when a backend answers with a non-success status.

    Parameters
    ----------
    message : str
        Message shown to the user.
    status_code : int | None, optional
        HTTP status returned by the backend.
    details : dict[str, Any] | None, optional
        Structured context attached to the error.
    cause : Exception | None, optional
        Exception this error wraps, if any.
    """

    default_code = ErrorCode.API

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details=details, cause=cause)
        self.status_code: int | None = status_code


class AuthenticationError(APIError):
    """Raised for 401/403 responses."""

    default_code = ErrorCode.AUTHENTICATION


class RateLimitError(APIError):
    """
    Raised when rate limits are exceeded.

    Parameters
    ----------
    message : str
        Message shown to the user.
    retry_after : float | None, optional
        Seconds the backend asked the client to wait.
    details : dict[str, Any] | None, optional
        Structured context attached to the error.
    cause : Exception | None, optional
        Exception this error wraps, if any.

    Examples
    --------
    >>> raise RateLimitError("Rate limit exceeded", retry_after=60.0)
    """

    default_code = ErrorCode.RATE_LIMIT

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if retry_after is not None:
            details["retry_after"] = retry_after
        super().__init__(message, status_code=429, details=details, cause=cause)
        self.retry_after: float | None = retry_after


class ModelUnavailableError(APIError):
    """Raised when the requested model is loading or does not exist."""

    default_code = ErrorCode.MODEL_UNAVAILABLE

    def __init__(
        self,
        message: str,
        model: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if model:
            details["model"] = model
        super().__init__(message, status_code=status_code, details=details, cause=cause)
        self.model: str | None = model


class ProtocolError(TandemError):
    """Raised when a backend response does not have the expected shape."""

    default_code = ErrorCode.PROTOCOL


class ValidationError(TandemError):
    """
    Raised for invalid input parameters or malformed data.

    Parameters
    ----------
    message : str
        Message shown to the user.
    field : str | None, optional
        Name of the invalid field.
    details : dict[str, Any] | None, optional
        Structured context attached to the error.
    cause : Exception | None, optional
        Exception this error wraps, if any.
    """

    default_code = ErrorCode.VALIDATION

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details=details, cause=cause)
        self.field: str | None = field


class ToolNotFoundError(TandemError):
    """Raised when a tool name is not registered."""

    default_code = ErrorCode.TOOL_NOT_FOUND

    def __init__(
        self,
        tool_name: str,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        details["tool_name"] = tool_name
        super().__init__(f"Tool '{tool_name}' not found", details=details, cause=cause)
        self.tool_name: str = tool_name


class ToolValidationError(ValidationError):
    """Raised when tool parameters fail validation."""


class SecurityViolationError(TandemError):
    """Raised when a tool requires an elevated security context."""

    default_code = ErrorCode.SECURITY


class UserDeniedError(TandemError):
    """Raised when an interactive approval is declined."""

    default_code = ErrorCode.USER_DENIED


class AbortError(TandemError):
    """Raised when a streaming operation is cancelled."""

    default_code = ErrorCode.ABORTED


class StreamingInProgressError(TandemError):
    """Raised when a second streaming operation is started concurrently."""

    default_code = ErrorCode.STREAMING_IN_PROGRESS
