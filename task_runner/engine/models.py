#!/usr/bin/env python3
# Ticket: 0001_phase_workflow_server
# Design: DESIGN.md
"""
Workflow Engine Data Models

Typed dataclasses representing the core domain objects of the engine. State
objects are plain @dataclass; input validation lives in schema.py (pydantic)
and produces these types. JSON serialization is handled by to_dict() on each
model, using the camelCase keys of the wire format and omitting absent
optionals (None) while keeping empty values ("" and []).
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Phase(str, Enum):
    """The six workflow phases, in default progression order."""

    ISSUE_START = "issue_start"
    IMPLEMENTATION = "implementation"
    QUALITY_CHECK = "quality_check"
    PR_CREATION = "pr_creation"
    FIX = "fix"
    COMPLETION = "completion"

    def __str__(self) -> str:
        return self.value


class ResultStatus(str, Enum):
    """Outcome a caller reports when completing a phase."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    def __str__(self) -> str:
        return self.value


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value

    @property
    def priority(self) -> int:
        return _LEVEL_PRIORITY[self]

    @classmethod
    def parse(cls, value: "str | LogLevel") -> "LogLevel":
        """Parse a level name, case-insensitively. 'warning' maps to WARN."""
        if isinstance(value, LogLevel):
            return value
        name = str(value).strip().lower()
        if name == "warning":
            name = "warn"
        try:
            return cls(name)
        except ValueError:
            raise ValueError(
                f"Unknown log level: '{value}'. "
                f"Valid levels: {[level.value for level in cls]}"
            ) from None


_LEVEL_PRIORITY = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARN: 2,
    LogLevel.ERROR: 3,
}


class ProtocolMessageType:
    REQUEST = "request"
    RESPONSE = "response"
    NOTIFICATION = "notification"

    ALL = frozenset([REQUEST, RESPONSE, NOTIFICATION])


# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_iso(dt: datetime) -> str:
    """Render an instant as ISO 8601 UTC with millisecond precision, e.g.
    2026-01-02T03:04:05.678Z."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def _is_calendar_date(text: str) -> bool:
    try:
        date.fromisoformat(text)
    except ValueError:
        return False
    return True


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO 8601 timestamp into an aware datetime.

    Naive timestamps are taken to be UTC.

    Raises:
        ValueError: if the string is not a valid ISO 8601 instant (a bare
            calendar date such as 2026-01-05 is not an instant)
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid timestamp: {value!r}")
    text = value.strip()
    if _is_calendar_date(text):
        raise ValueError(f"Timestamp has no time of day: {value!r}")
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _drop_none(d: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in d.items() if v is not None}


# ---------------------------------------------------------------------------
# Workflow dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PhaseInstruction:
    """Static guidance for one phase. Never mutated after module import."""
    phase_name: Phase
    preconditions: tuple[str, ...]
    acceptance_criteria: tuple[str, ...]
    tasks: tuple[str, ...]
    context: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "phaseName": self.phase_name.value,
            "preconditions": list(self.preconditions),
            "acceptanceCriteria": list(self.acceptance_criteria),
            "tasks": list(self.tasks),
            "context": dict(self.context) if self.context is not None else None,
        })


@dataclass(frozen=True)
class PhaseResult:
    """A caller's report that the current phase has finished."""
    phase_name: Phase
    status: ResultStatus
    completed_at: str                           # ISO 8601, validated by schema.py
    working_files: tuple[str, ...] = ()
    completed_tasks: tuple[str, ...] = ()
    notes: str | None = None
    next_phase: Phase | None = None             # explicit override

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "phaseName": self.phase_name.value,
            "status": self.status.value,
            "workingFiles": list(self.working_files),
            "completedTasks": list(self.completed_tasks),
            "notes": self.notes,
            "nextPhase": self.next_phase.value if self.next_phase else None,
            "completedAt": self.completed_at,
        })


@dataclass
class WorkflowState:
    """The single in-flight workflow held by a WorkflowManager."""
    issue_id: str
    current_phase: Phase
    started_at: datetime
    updated_at: datetime
    working_files: list[str] = field(default_factory=list)
    phase_history: list[PhaseResult] = field(default_factory=list)

    def snapshot(self) -> "WorkflowState":
        """Return a copy whose lists can be modified without touching self."""
        return replace(
            self,
            working_files=list(self.working_files),
            phase_history=list(self.phase_history),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "issueId": self.issue_id,
            "currentPhase": self.current_phase.value,
            "workingFiles": list(self.working_files),
            "phaseHistory": [r.to_dict() for r in self.phase_history],
            "startedAt": format_iso(self.started_at),
            "updatedAt": format_iso(self.updated_at),
        }


@dataclass(frozen=True)
class WorkflowStatus:
    """Read-only progress summary."""
    has_active_workflow: bool
    total_phases: int
    completed_phases: int = 0
    working_files_count: int = 0
    issue_id: str | None = None
    current_phase: Phase | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "hasActiveWorkflow": self.has_active_workflow,
            "issueId": self.issue_id,
            "currentPhase": self.current_phase.value if self.current_phase else None,
            "totalPhases": self.total_phases,
            "completedPhases": self.completed_phases,
            "workingFilesCount": self.working_files_count,
        })


# ---------------------------------------------------------------------------
# Log record dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProtocolError:
    code: int
    message: str
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({"code": self.code, "message": self.message, "data": self.data})


@dataclass(frozen=True)
class ProtocolMessage:
    """One request, response or notification exchanged with the client."""
    type: str                       # ProtocolMessageType
    id: str | int | None = None
    method: str | None = None
    params: Any = None
    result: Any = None
    error: ProtocolError | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "type": self.type,
            "id": self.id,
            "method": self.method,
            "params": self.params,
            "result": self.result,
            "error": self.error.to_dict() if self.error else None,
        })


@dataclass(frozen=True)
class WorkflowLog:
    """Snapshot of the workflow attached to a transition log entry."""
    phase: str
    working_files: tuple[str, ...] = ()
    previous_phase: str | None = None
    instruction: PhaseInstruction | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "phase": self.phase,
            "previousPhase": self.previous_phase,
            "workingFiles": list(self.working_files),
            "instruction": self.instruction.to_dict() if self.instruction else None,
        })


@dataclass(frozen=True)
class TimingInfo:
    """Wall-clock timing in epoch milliseconds."""
    start: float
    end: float | None = None
    duration: float | None = None

    @classmethod
    def between(cls, start: float, end: float) -> "TimingInfo":
        return cls(start=start, end=end, duration=end - start)

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({"start": self.start, "end": self.end, "duration": self.duration})


@dataclass(frozen=True)
class LogEntry:
    """Immutable audit record. One per emitted log call."""
    timestamp: str
    session_id: str
    sequence_number: int
    level: LogLevel
    message: str | None = None
    protocol: ProtocolMessage | None = None
    workflow: WorkflowLog | None = None
    timing: TimingInfo | None = None
    metadata: dict[str, Any] | None = None
    error: Any = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "timestamp": self.timestamp,
            "sessionId": self.session_id,
            "sequenceNumber": self.sequence_number,
            "level": self.level.value,
            "message": self.message,
            "protocol": self.protocol.to_dict() if self.protocol else None,
            "workflow": self.workflow.to_dict() if self.workflow else None,
            "timing": self.timing.to_dict() if self.timing else None,
            "metadata": self.metadata,
            "error": _error_to_json(self.error),
        })


def _error_to_json(error: Any) -> Any:
    """Exceptions are not JSON-serializable; record their type and message."""
    if isinstance(error, BaseException):
        to_dict = getattr(error, "to_dict", None)
        if callable(to_dict):
            return {"type": type(error).__name__, **to_dict()}
        return {"type": type(error).__name__, "message": str(error)}
    return error
