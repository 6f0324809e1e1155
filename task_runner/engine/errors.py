#!/usr/bin/env python3
# Ticket: 0001_phase_workflow_server
# Design: DESIGN.md
"""
Workflow Engine Error Types

Every error the engine surfaces to a caller derives from WorkflowError. The
server maps these onto protocol error codes; nothing here is retried.
"""

from typing import Any


class WorkflowError(Exception):
    """Base class for all workflow engine errors."""

    code = "workflow_error"

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": str(self)}


class InvalidArgumentError(WorkflowError, ValueError):
    """Raised when input is malformed or outside a closed enumeration."""

    code = "invalid_argument"


class AlreadyActiveError(WorkflowError):
    """Raised when a workflow is started while another one is active."""

    code = "already_active"

    def __init__(self, issue_id: str):
        self.issue_id = issue_id
        super().__init__(
            f"Workflow already in progress for issue {issue_id}. "
            "Complete or reset current workflow first."
        )


class NoActiveWorkflowError(WorkflowError):
    """Raised when an operation needs an active workflow and there is none."""

    code = "no_active_workflow"

    def __init__(self, operation: str = "complete phase"):
        self.operation = operation
        super().__init__(f"No active workflow to {operation} for")


class PhaseMismatchError(WorkflowError):
    """Raised when a completion targets a phase other than the current one."""

    code = "phase_mismatch"

    def __init__(self, attempted: str, current: str):
        self.attempted = attempted
        self.current = current
        super().__init__(
            f"Phase mismatch: attempting to complete {attempted} "
            f"but current phase is {current}"
        )


class UnknownPhaseError(WorkflowError, LookupError):
    """Raised when a catalog or table lookup misses. Indicates a bug."""

    code = "unknown_phase"

    def __init__(self, phase: Any):
        self.phase = phase
        super().__init__(f"Unknown phase: {phase!r}")
