"""
Core types mirroring the remote job model.

Remote payload shapes (job inputs, outputs, error details) are defined by
the automation script rather than the client, so their data is carried as
open JSON values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, TypeAlias, Union

JsonValue: TypeAlias = Union[None, bool, int, float, str, list["JsonValue"], dict[str, "JsonValue"]]
JobInputObject: TypeAlias = dict[str, Any]
ErrorCategory = Literal["client", "server", "website"]


class JobState(str, Enum):
    """Job lifecycle states.

    State transitions driven by remote events:
    - CREATED -> PROCESSING (job accepted)
    - PROCESSING -> AWAITING_INPUT (script requested an input)
    - PROCESSING -> AWAITING_TDS (3-D Secure challenge started)
    - AWAITING_INPUT / AWAITING_TDS -> PROCESSING (resumed)
    - PROCESSING -> SUCCESS | FAIL

    SCHEDULED and PENDING only appear in remote job snapshots.
    """

    CREATED = "created"
    SCHEDULED = "scheduled"
    PROCESSING = "processing"
    AWAITING_INPUT = "awaitingInput"
    AWAITING_TDS = "awaitingTds"
    PENDING = "pending"
    SUCCESS = "success"
    FAIL = "fail"

    @property
    def is_terminal(self) -> bool:
        """Check if this is a terminal state."""
        return self in {JobState.SUCCESS, JobState.FAIL}


class JobCategory(str, Enum):
    """Live or test job, used for filtering jobs in the dashboard."""

    LIVE = "live"
    TEST = "test"


class RemoteEventName(str, Enum):
    """Names of events in the remote append-only job event log."""

    AWAITING_INPUT = "awaitingInput"
    CREATE_OUTPUT = "createOutput"
    SUCCESS = "success"
    FAIL = "fail"
    TDS_START = "tdsStart"
    TDS_FINISH = "tdsFinish"
    RESTART = "restart"
    PROCESSING = "processing"


@dataclass
class JobError:
    """Describes the reason of a job failure.

    Note: this is information, not an exception; JobFailedError wraps it.
    """

    code: str = "UnknownError"
    category: ErrorCategory = "server"
    message: str = "Unknown error"
    details: JsonValue = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> JobError:
        """Build from a remote payload, defaulting missing fields."""
        data = data or {}
        return cls(
            code=data.get("code") or "UnknownError",
            category=data.get("category") or "server",
            message=data.get("message") or "Unknown error",
            details=data.get("details"),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"code": self.code, "category": self.category, "message": self.message}
        if self.details is not None:
            d["details"] = self.details
        return d


@dataclass
class JobInput:
    key: str
    data: JsonValue = None


@dataclass
class JobOutput:
    key: str
    data: JsonValue = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobOutput:
        return cls(key=data["key"], data=data.get("data"))


@dataclass
class PreviousJobOutput:
    """Output previously emitted by another job of the same service."""

    job_id: str
    key: str
    data: JsonValue = None
    variability: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PreviousJobOutput:
        return cls(
            job_id=data.get("jobId", ""),
            key=data["key"],
            data=data.get("data"),
            variability=data.get("variability", 0.0),
        )


@dataclass
class RemoteJob:
    """Job snapshot as returned by ``GET /jobs/{id}``."""

    id: str
    state: JobState
    category: JobCategory = JobCategory.TEST
    service_id: str | None = None
    awaiting_input_key: str | None = None
    error: JobError | None = None
    tds_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteJob:
        error = data.get("error")
        return cls(
            id=data["id"],
            state=JobState(data.get("state", JobState.CREATED.value)),
            category=JobCategory(data.get("category") or JobCategory.TEST.value),
            service_id=data.get("serviceId"),
            awaiting_input_key=data.get("awaitingInputKey"),
            error=error if isinstance(error, JobError) else (JobError.from_dict(error) if error else None),
            tds_id=data.get("tdsId"),
        )


@dataclass
class RemoteJobEvent:
    """Entry of the remote job event log. Never mutated."""

    id: str
    name: str
    key: str | None = None
    created_at: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteJobEvent:
        return cls(
            id=str(data.get("id", "")),
            name=data["name"],
            key=data.get("key"),
            created_at=data.get("createdAt", 0),
        )


@dataclass
class Tds:
    """3-D Secure challenge produced by a job."""

    id: str
    url: str
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Tds:
        return cls(
            id=data["id"],
            url=data["url"],
            extra={k: v for k, v in data.items() if k not in ("id", "url")},
        )


__all__ = [
    "JsonValue",
    "JobInputObject",
    "ErrorCategory",
    "JobState",
    "JobCategory",
    "RemoteEventName",
    "JobError",
    "JobInput",
    "JobOutput",
    "PreviousJobOutput",
    "RemoteJob",
    "RemoteJobEvent",
    "Tds",
]
