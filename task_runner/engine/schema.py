#!/usr/bin/env python3
# Ticket: 0001_phase_workflow_server
# Design: DESIGN.md
"""
Workflow Engine Input Schemas

Pydantic models for the payloads the server accepts. They enforce the closed
enumerations (phase names, result statuses) and timestamp format before any
workflow state is read, and convert into the engine's dataclasses.

Wire names are camelCase (phaseName, workingFiles, ...); snake_case field
names are accepted as well.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InvalidArgumentError
from .models import Phase, PhaseResult, ResultStatus, parse_timestamp


class StartWorkflowInput(BaseModel):
    """Payload for start_issue_workflow."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    issue_number: str = Field(alias="issueNumber", min_length=1)

    @field_validator("issue_number")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Issue number is required")
        return value


class PhaseResultInput(BaseModel):
    """Payload for complete_phase."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    phase_name: Phase = Field(alias="phaseName")
    status: ResultStatus
    working_files: list[str] = Field(alias="workingFiles")
    completed_tasks: list[str] = Field(alias="completedTasks")
    notes: str | None = None
    next_phase: Phase | None = Field(default=None, alias="nextPhase")
    completed_at: str = Field(alias="completedAt")

    @field_validator("completed_at")
    @classmethod
    def _valid_timestamp(cls, value: str) -> str:
        try:
            parse_timestamp(value)
        except ValueError:
            raise ValueError(f"completedAt is not a valid ISO 8601 timestamp: {value!r}") from None
        return value

    def to_result(self) -> PhaseResult:
        return PhaseResult(
            phase_name=self.phase_name,
            status=self.status,
            completed_at=self.completed_at,
            working_files=tuple(self.working_files),
            completed_tasks=tuple(self.completed_tasks),
            notes=self.notes,
            next_phase=self.next_phase,
        )


# ---------------------------------------------------------------------------
# Validation entry points
# ---------------------------------------------------------------------------


def _describe(exc: ValidationError) -> str:
    problems = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ())) or "input"
        problems.append(f"{location}: {err.get('msg', 'invalid value')}")
    return "; ".join(problems)


def parse_start_input(payload: dict[str, Any]) -> str:
    """
    Validate a start payload and return the issue id.

    Raises:
        InvalidArgumentError: payload does not match StartWorkflowInput
    """
    try:
        return StartWorkflowInput.model_validate(payload).issue_number
    except ValidationError as exc:
        raise InvalidArgumentError(f"Invalid start_issue_workflow input: {_describe(exc)}") from exc


def parse_phase_result(payload: dict[str, Any]) -> PhaseResult:
    """
    Validate a completion payload and return a PhaseResult.

    Raises:
        InvalidArgumentError: payload does not match PhaseResultInput
    """
    try:
        return PhaseResultInput.model_validate(payload).to_result()
    except ValidationError as exc:
        raise InvalidArgumentError(f"Invalid complete_phase input: {_describe(exc)}") from exc
