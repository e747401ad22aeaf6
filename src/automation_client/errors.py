"""
Error taxonomy for automation-client.

This module provides a hierarchical exception system with:
- Error codes for programmatic handling
- Retryable vs non-retryable classification
- Structured details mirrored from remote error payloads
- Mapping of HTTP responses to transport errors
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .types import JobError, JobState


class ErrorCode(str, Enum):
    """Standardized error codes for the automation client."""

    # Configuration errors (1xxx)
    CONFIG_ERROR = "ERR_1000"
    CLIENT_CONFIG = "ERR_1001"
    INVALID_CONFIG = "ERR_1002"

    # Lifecycle misuse (2xxx)
    JOB_LIFECYCLE = "ERR_2000"
    JOB_NOT_INITIALIZED = "ERR_2001"
    JOB_ALREADY_STARTED = "ERR_2002"

    # Transport errors (3xxx)
    TRANSPORT_ERROR = "ERR_3000"
    NETWORK_ERROR = "ERR_3001"
    API_ERROR = "ERR_3002"

    # Tracking errors (4xxx)
    JOB_TRACK = "ERR_4000"

    # Job outcome errors (5xxx)
    JOB_FAILED = "ERR_5000"
    JOB_OUTPUT_WAIT = "ERR_5001"

    # Internal errors (9xxx)
    INTERNAL_ERROR = "ERR_9000"


RETRYABLE_STATUSES: tuple[int, ...] = (502, 503, 504)


@dataclass
class ErrorContext:
    """Structured context for error debugging."""

    request_id: str | None = None
    job_id: str | None = None
    method: str | None = None
    url: str | None = None
    attempt: int = 1
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "job_id": self.job_id,
            "method": self.method,
            "url": self.url,
            "attempt": self.attempt,
            **self.extra,
        }


class AutomationClientError(Exception):
    """
    Base exception for all automation client errors.

    Attributes:
        code: Standardized error code for programmatic handling
        message: Human-readable error message
        retryable: Whether the operation can be retried
        context: Structured debugging context
        cause: Original exception that caused this error
        details: Arbitrary structured details (remote payloads included)
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if retryable is not None:
            self.retryable = retryable
        self.context = context or ErrorContext()
        self.cause = cause
        self.details: dict[str, Any] = dict(details or {})

    @property
    def name(self) -> str:
        """Error name; remote errors report the name assigned by the server."""
        return type(self).__name__

    def __str__(self) -> str:
        parts = [f"[{self.code.value}] {self.message}"]
        if self.context.request_id:
            parts.append(f"(request_id={self.context.request_id})")
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "name": self.name,
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
        }


def error_name(error: BaseException) -> str:
    """Name of an error as reported to consumers."""
    if isinstance(error, AutomationClientError):
        return error.name
    return type(error).__name__


def error_message(error: BaseException) -> str:
    if isinstance(error, AutomationClientError):
        return error.message
    return str(error)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigError(AutomationClientError):
    """Base class for configuration errors."""

    code = ErrorCode.CONFIG_ERROR
    retryable = False


class ClientConfigError(ConfigError):
    """A required client setting (e.g. serviceId) could not be resolved."""

    code = ErrorCode.CLIENT_CONFIG


class InvalidConfigError(ConfigError):
    """Configuration is invalid."""

    code = ErrorCode.INVALID_CONFIG


# =============================================================================
# Lifecycle Errors
# =============================================================================


class JobLifecycleError(AutomationClientError):
    """Job method used in a state where it is not allowed."""

    code = ErrorCode.JOB_LIFECYCLE


class JobNotInitializedError(JobLifecycleError):
    """Job has no remote id yet."""

    code = ErrorCode.JOB_NOT_INITIALIZED

    def __init__(self, message: str = "Invalid state: job not yet initialized", **kwargs):
        super().__init__(message, **kwargs)


class JobAlreadyStartedError(JobLifecycleError):
    """Job was already created or is already tracking a remote job."""

    code = ErrorCode.JOB_ALREADY_STARTED

    def __init__(
        self,
        message: str = "Job is already initialized",
        *,
        job_id: str | None = None,
        **kwargs,
    ):
        kwargs.setdefault("context", ErrorContext(job_id=job_id))
        super().__init__(message, details={"job_id": job_id}, **kwargs)
        self.job_id = job_id


# =============================================================================
# Transport Errors
# =============================================================================


class TransportError(AutomationClientError):
    """Base class for HTTP failures surfaced by the transport."""

    code = ErrorCode.TRANSPORT_ERROR
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        http_status: int | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.http_status = http_status
        if http_status is not None:
            self.details.setdefault("status", http_status)
            if "retryable" not in kwargs:
                self.retryable = http_status in RETRYABLE_STATUSES


class NetworkError(TransportError):
    """Connection failure or request timeout. Retryable."""

    code = ErrorCode.NETWORK_ERROR
    retryable = True


class ApiError(TransportError):
    """Structured error returned by the remote API as a JSON body."""

    code = ErrorCode.API_ERROR

    def __init__(
        self,
        message: str,
        *,
        name: str,
        remote_code: str | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self._name = name
        self.remote_code = remote_code

    @property
    def name(self) -> str:
        return self._name


def error_from_response(
    status: int,
    body: Any,
    *,
    method: str | None = None,
    url: str | None = None,
    context: ErrorContext | None = None,
) -> TransportError:
    """
    Create an appropriate TransportError from an HTTP error response.

    A JSON body carrying ``name`` and ``message`` becomes an ApiError;
    anything else falls back to a generic TransportError with the status.
    """
    ctx = context or ErrorContext(method=method, url=url)
    if isinstance(body, dict) and body.get("name") and body.get("message"):
        details = body.get("details")
        if details is not None and not isinstance(details, dict):
            details = {"details": details}
        return ApiError(
            str(body["message"]),
            name=str(body["name"]),
            remote_code=body.get("code"),
            http_status=status,
            details=details,
            context=ctx,
        )
    return TransportError(
        f"Request failed with status {status}: {method} {url}",
        http_status=status,
        context=ctx,
    )


# =============================================================================
# Tracking & Job Outcome Errors
# =============================================================================


class JobTrackError(AutomationClientError):
    """Tracking loop failed to fetch or apply remote events. Fatal to the session."""

    code = ErrorCode.JOB_TRACK

    def __init__(self, cause: BaseException, **kwargs):
        super().__init__(
            f"Job tracking failed: {error_message(cause)}",
            cause=cause,
            details={"cause": cause},
            **kwargs,
        )

    @property
    def cause_name(self) -> str:
        return error_name(self.cause) if self.cause else "UnknownError"


class JobFailedError(AutomationClientError):
    """The remote job transitioned to FAIL."""

    code = ErrorCode.JOB_FAILED

    def __init__(self, job_error: JobError | None, **kwargs):
        message = job_error.message if job_error and job_error.message else "Unknown error"
        details: dict[str, Any] = {"category": job_error.category if job_error else "server"}
        if job_error and isinstance(job_error.details, dict):
            details.update(job_error.details)
        super().__init__(message, details=details, **kwargs)
        self.job_error = job_error

    @property
    def name(self) -> str:
        if self.job_error and self.job_error.code:
            return self.job_error.code
        return "UnknownError"

    @property
    def category(self) -> str:
        return self.details["category"]


class JobOutputWaitError(AutomationClientError):
    """Job reached a terminal state before the awaited outputs were emitted."""

    code = ErrorCode.JOB_OUTPUT_WAIT

    def __init__(
        self,
        message: str,
        *,
        state: JobState,
        job_id: str | None = None,
        missing_keys: list[str] | None = None,
        **kwargs,
    ):
        kwargs.setdefault("context", ErrorContext(job_id=job_id))
        super().__init__(
            message,
            details={"state": state, "job_id": job_id, "missing_keys": list(missing_keys or [])},
            **kwargs,
        )
        self.state = state
        self.job_id = job_id
        self.missing_keys = list(missing_keys or [])

    @property
    def succeeded(self) -> bool:
        return self.state.value == "success"

    @property
    def failed(self) -> bool:
        return self.state.value == "fail"


def is_retryable(error: BaseException) -> bool:
    """
    Check if an error is retryable by the transport.

    Args:
        error: Exception to check

    Returns:
        True if the error is retryable
    """
    if isinstance(error, AutomationClientError):
        return error.retryable

    retryable_types = (
        asyncio.TimeoutError,
        ConnectionError,
        TimeoutError,
    )
    return isinstance(error, retryable_types)


__all__ = [
    # Base
    "ErrorCode",
    "ErrorContext",
    "AutomationClientError",
    "RETRYABLE_STATUSES",
    # Config errors
    "ConfigError",
    "ClientConfigError",
    "InvalidConfigError",
    # Lifecycle errors
    "JobLifecycleError",
    "JobNotInitializedError",
    "JobAlreadyStartedError",
    # Transport errors
    "TransportError",
    "NetworkError",
    "ApiError",
    # Tracking & outcome errors
    "JobTrackError",
    "JobFailedError",
    "JobOutputWaitError",
    # Utilities
    "error_from_response",
    "error_name",
    "error_message",
    "is_retryable",
]
