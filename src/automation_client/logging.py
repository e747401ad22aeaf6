"""
Structured Logging for the automation client.

This module provides:
- Structured JSON logging with consistent fields
- HTTP request/response logging with request correlation
- Job event and state transition logging
- Log level filtering and formatting options
"""

from __future__ import annotations

import json
import logging
import sys
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

# =============================================================================
# Log Record Types
# =============================================================================


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class LogContext:
    """Context information attached to log records."""

    job_id: str | None = None
    request_id: str | None = None
    service_id: str | None = None
    operation: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d = {k: v for k, v in asdict(self).items() if v is not None and k != "extra"}
        d.update(self.extra)
        return d

    def with_update(self, **kwargs) -> LogContext:
        """Create a new context with updated values."""
        return LogContext(
            job_id=kwargs.get("job_id", self.job_id),
            request_id=kwargs.get("request_id", self.request_id),
            service_id=kwargs.get("service_id", self.service_id),
            operation=kwargs.get("operation", self.operation),
            extra={**self.extra, **kwargs.get("extra", {})},
        )


@dataclass
class RequestLog:
    """Log record for an outgoing API request attempt."""

    request_id: str
    method: str
    url: str
    attempt: int = 1
    timestamp: str = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class ResponseLog:
    """Log record for an API response (or a failed attempt)."""

    request_id: str
    method: str
    url: str

    success: bool = True
    status_code: int | None = None
    error: str | None = None

    timestamp: str = field(default_factory=_now)
    duration_ms: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class JobEventLog:
    """Log record for a remote job event applied by the tracker."""

    job_id: str
    name: str
    key: str | None = None
    offset: int = 0
    timestamp: str = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


# =============================================================================
# Structured Logger
# =============================================================================


class StructuredLogger:
    """
    Logger with structured JSON output and context tracking.

    Example:
        ```python
        logger = StructuredLogger("automation_client")

        with logger.trace_context(job_id=job.job_id):
            logger.log_job_event(JobEventLog(...))
        ```
    """

    def __init__(
        self,
        name: str = "automation_client",
        level: str = "INFO",
        json_output: bool = True,
        include_timestamp: bool = True,
        redact_secrets: bool = True,
        log_http: bool = True,
        log_events: bool = True,
    ):
        self.name = name
        self.json_output = json_output
        self.include_timestamp = include_timestamp
        self.redact_secrets = redact_secrets
        self.log_http = log_http
        self.log_events = log_events

        self._logger = logging.getLogger(name)
        self._logger.setLevel(getattr(logging, level.upper()))

        self._context: LogContext = LogContext()

        if not self._logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            if json_output:
                handler.setFormatter(JSONFormatter())
            else:
                handler.setFormatter(TextFormatter())
            self._logger.addHandler(handler)

    @property
    def context(self) -> LogContext:
        return self._context

    def set_context(self, **kwargs) -> None:
        """Update the current log context."""
        self._context = self._context.with_update(**kwargs)

    @contextmanager
    def trace_context(self, **kwargs) -> Iterator[LogContext]:
        """Context manager that scopes extra context fields to a block."""
        old_context = self._context
        try:
            self._context = old_context.with_update(**kwargs)
            yield self._context
        finally:
            self._context = old_context

    @contextmanager
    def request_context(self, method: str, url: str) -> Iterator[str]:
        """
        Context manager for a single API request.

        Yields:
            The request ID
        """
        request_id = generate_request_id()
        with self.trace_context(request_id=request_id, operation=f"{method} {url}"):
            yield request_id

    def _log(
        self,
        level: int,
        message: str,
        event_type: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        if not self._logger.isEnabledFor(level):
            return
        record_data = {
            "message": message,
            **self._context.to_dict(),
        }

        if event_type:
            record_data["event_type"] = event_type

        if data:
            record_data.update(data)

        if self.json_output:
            self._logger.log(level, json.dumps(record_data, default=str))
        else:
            extras = " ".join(f"{k}={v}" for k, v in record_data.items() if k != "message")
            self._logger.log(level, f"{message} {extras}")

    def debug(self, message: str, **kwargs) -> None:
        self._log(logging.DEBUG, message, data=kwargs)

    def info(self, message: str, **kwargs) -> None:
        self._log(logging.INFO, message, data=kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._log(logging.WARNING, message, data=kwargs)

    def error(self, message: str, **kwargs) -> None:
        self._log(logging.ERROR, message, data=kwargs)

    # Typed logging methods

    def log_request(self, request: RequestLog) -> None:
        """Log an API request attempt."""
        if not self.log_http:
            return
        self._log(
            logging.DEBUG,
            f"{request.method} {request.url} (attempt {request.attempt})",
            event_type="request",
            data=request.to_dict(),
        )

    def log_response(self, response: ResponseLog) -> None:
        """Log an API response."""
        if not self.log_http and response.success:
            return
        level = logging.DEBUG if response.success else logging.WARNING
        message = f"{response.method} {response.url} -> {response.status_code or response.error}"
        if response.duration_ms is not None:
            message += f" ({response.duration_ms:.0f}ms)"
        self._log(level, message, event_type="response", data=response.to_dict())

    def log_job_event(self, event: JobEventLog) -> None:
        """Log a remote job event being applied."""
        if not self.log_events:
            return
        self._log(
            logging.DEBUG,
            f"Job event '{event.name}'" + (f" ({event.key})" if event.key else ""),
            event_type="job_event",
            data=event.to_dict(),
        )

    def log_state_change(self, job_id: str | None, new_state: Any, previous_state: Any) -> None:
        """Log a local job state transition."""
        new = getattr(new_state, "value", new_state)
        previous = getattr(previous_state, "value", previous_state)
        self._log(
            logging.INFO,
            f"Job state {previous} -> {new}",
            event_type="state_changed",
            data={"job_id": job_id, "state": new, "previous_state": previous},
        )

    def log_error(
        self,
        error: BaseException,
        message: str | None = None,
        **kwargs,
    ) -> None:
        """Log an error with context."""
        error_data = {
            "error_type": type(error).__name__,
            "error_message": str(error),
            **kwargs,
        }

        # Extract additional info from AutomationClientError
        if hasattr(error, "code") and hasattr(error.code, "value"):
            error_data["error_code"] = str(error.code.value)
        if hasattr(error, "name") and isinstance(error.name, str):
            error_data["error_name"] = error.name
        if hasattr(error, "retryable"):
            error_data["retryable"] = error.retryable
        if hasattr(error, "context") and hasattr(error.context, "to_dict"):
            error_data["error_context"] = error.context.to_dict()

        self._log(
            logging.ERROR,
            message or f"Error: {error}",
            event_type="error",
            data=error_data,
        )


# =============================================================================
# Formatters
# =============================================================================


class JSONFormatter(logging.Formatter):
    """JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": _now(),
            "level": record.levelname,
            "logger": record.name,
        }

        try:
            message_data = json.loads(record.getMessage())
            if isinstance(message_data, dict):
                log_data.update(message_data)
            else:
                log_data["message"] = record.getMessage()
        except (json.JSONDecodeError, TypeError):
            log_data["message"] = record.getMessage()

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%H:%M:%S.%f")[:-3]
        color = self.LEVEL_COLORS.get(record.levelname, "")
        reset = self.RESET if color else ""

        return f"{timestamp} {color}{record.levelname:8}{reset} {record.getMessage()}"


# =============================================================================
# Utilities
# =============================================================================


def generate_request_id() -> str:
    """Generate a unique request ID."""
    return f"req_{uuid.uuid4().hex[:12]}"


def redact_secret(secret: str | None) -> str:
    """Redact a credential for safe logging."""
    if not secret:
        return "<not set>"
    if len(secret) <= 8:
        return "***"
    return f"{secret[:4]}...{secret[-4:]}"


def truncate_for_log(text: str, max_length: int = 200) -> str:
    """Truncate text for logging."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + f"... ({len(text)} chars total)"


@dataclass
class Timer:
    """Simple timer for measuring durations."""

    start_time: float = field(default_factory=time.perf_counter)
    end_time: float | None = None

    def stop(self) -> float:
        """Stop the timer and return duration in milliseconds."""
        self.end_time = time.perf_counter()
        return self.elapsed_ms

    @property
    def elapsed_ms(self) -> float:
        end = self.end_time or time.perf_counter()
        return (end - self.start_time) * 1000


@contextmanager
def timed() -> Iterator[Timer]:
    """Context manager for timing operations."""
    timer = Timer()
    try:
        yield timer
    finally:
        timer.stop()


# =============================================================================
# Global Logger
# =============================================================================

_default_logger: StructuredLogger | None = None


def get_logger(name: str = "automation_client") -> StructuredLogger:
    """Get or create a structured logger."""
    global _default_logger
    if _default_logger is None or _default_logger.name != name:
        _default_logger = StructuredLogger(name)
    return _default_logger


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    **kwargs: Any,
) -> StructuredLogger:
    """Configure the default logger."""
    global _default_logger
    _default_logger = StructuredLogger(
        level=level,
        json_output=json_output,
        **kwargs,
    )
    return _default_logger


__all__ = [
    # Context
    "LogContext",
    # Log records
    "RequestLog",
    "ResponseLog",
    "JobEventLog",
    # Logger
    "StructuredLogger",
    # Formatters
    "JSONFormatter",
    "TextFormatter",
    # Timing
    "Timer",
    "timed",
    # Utilities
    "generate_request_id",
    "redact_secret",
    "truncate_for_log",
    # Global
    "get_logger",
    "configure_logging",
]
