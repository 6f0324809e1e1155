#!/usr/bin/env python3
# Ticket: 0001_phase_workflow_server
# Design: DESIGN.md
"""
Workflow Engine Manager

WorkflowManager owns the single in-flight WorkflowState and is the only code
that mutates it. All mutating operations:

1. validate against the current state and raise before touching anything,
2. apply the change,
3. record it through the AuditLogger.

start(), complete() and reset() hold a per-instance lock for the whole
read-validate-mutate sequence, so tool calls dispatched on worker threads
are applied one at a time. Callers only ever receive snapshots of the state.
"""

import threading
from datetime import datetime
from typing import Callable

from .audit import AuditLogger
from .errors import (
    AlreadyActiveError,
    InvalidArgumentError,
    NoActiveWorkflowError,
    PhaseMismatchError,
    WorkflowError,
)
from .models import (
    Phase,
    PhaseInstruction,
    PhaseResult,
    WorkflowLog,
    WorkflowState,
    WorkflowStatus,
    utc_now,
)
from .phases import TOTAL_PHASES, get_instruction
from .state_machine import is_valid_transition, resolve_next_phase


def merge_working_files(existing: list[str], incoming: tuple[str, ...] | list[str]) -> list[str]:
    """Ordered union: existing entries first, then unseen incoming ones."""
    merged = list(existing)
    seen = set(merged)
    for path in incoming:
        if path not in seen:
            seen.add(path)
            merged.append(path)
    return merged


class WorkflowManager:
    """
    Holds at most one active workflow and moves it through its phases.

    Args:
        logger: Audit logger that records every mutation and every error.
        clock: Returns the current aware datetime. Injected by tests.
    """

    def __init__(
        self,
        logger: AuditLogger,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.logger = logger
        self._clock = clock
        self._state: WorkflowState | None = None
        self._lock = threading.RLock()

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    def _fail(self, operation: str, error: WorkflowError, **context) -> WorkflowError:
        """Log a rejected operation and hand the error back for raising."""
        self.logger.error(
            f"Failed to {operation}",
            error=error,
            metadata={"operation": operation, **context},
        )
        return error

    def _now(self) -> datetime:
        now = self._clock()
        # updated_at must never go backwards
        if self._state is not None and now < self._state.updated_at:
            return self._state.updated_at
        return now

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    @property
    def has_active_workflow(self) -> bool:
        return self._state is not None

    def current_workflow(self) -> WorkflowState | None:
        """Snapshot of the active workflow, or None."""
        state = self._state
        return state.snapshot() if state is not None else None

    def current_instruction(self) -> PhaseInstruction | None:
        """Guidance for the active phase, or None when idle."""
        state = self._state
        if state is None:
            return None
        return get_instruction(state.current_phase)

    def status(self) -> WorkflowStatus:
        state = self._state
        if state is None:
            return WorkflowStatus(has_active_workflow=False, total_phases=TOTAL_PHASES)
        return WorkflowStatus(
            has_active_workflow=True,
            total_phases=TOTAL_PHASES,
            completed_phases=len(state.phase_history),
            working_files_count=len(state.working_files),
            issue_id=state.issue_id,
            current_phase=state.current_phase,
        )

    def can_transition_to(self, target: Phase | str) -> bool:
        """
        Return True if target could become the current phase next.

        With no active workflow only issue_start (via start()) is reachable.
        """
        state = self._state
        if state is None:
            return target == Phase.ISSUE_START
        return is_valid_transition(state.current_phase, target)

    # -----------------------------------------------------------------------
    # Mutations
    # -----------------------------------------------------------------------

    def start(self, issue_id: str) -> WorkflowState:
        """
        Begin a workflow for issue_id at issue_start.

        Raises:
            InvalidArgumentError: issue_id is empty
            AlreadyActiveError: a workflow is already in progress
        """
        with self._lock:
            self.logger.info("Starting new workflow", metadata={"issueId": issue_id})

            if not isinstance(issue_id, str) or not issue_id.strip():
                raise self._fail(
                    "start workflow",
                    InvalidArgumentError("Issue number is required"),
                    issueId=issue_id,
                )
            if self._state is not None:
                raise self._fail(
                    "start workflow",
                    AlreadyActiveError(self._state.issue_id),
                    issueId=issue_id,
                    activeIssueId=self._state.issue_id,
                )

            now = self._clock()
            self._state = WorkflowState(
                issue_id=issue_id,
                current_phase=Phase.ISSUE_START,
                started_at=now,
                updated_at=now,
            )

            self.logger.log_workflow(
                WorkflowLog(
                    phase=Phase.ISSUE_START.value,
                    working_files=(),
                    instruction=get_instruction(Phase.ISSUE_START),
                ),
                metadata={"event": "workflow_started", "issueId": issue_id},
            )
            return self._state.snapshot()

    def complete(self, result: PhaseResult) -> WorkflowState:
        """
        Record completion of the current phase and advance.

        The result's working files are merged into the workflow, the result
        is appended to the history, and the next phase is the result's
        next_phase if that is a valid transition, else the default.

        Raises:
            NoActiveWorkflowError: nothing to complete
            PhaseMismatchError: result.phase_name is not the current phase
        """
        with self._lock:
            state = self._state
            if state is None:
                raise self._fail(
                    "complete phase",
                    NoActiveWorkflowError("complete phase"),
                    phaseName=result.phase_name.value,
                )
            if result.phase_name != state.current_phase:
                raise self._fail(
                    "complete phase",
                    PhaseMismatchError(result.phase_name.value, state.current_phase.value),
                    issueId=state.issue_id,
                    phaseName=result.phase_name.value,
                    currentPhase=state.current_phase.value,
                )

            self.logger.info(
                "Completing phase",
                metadata={
                    "issueId": state.issue_id,
                    "phaseName": result.phase_name.value,
                    "status": result.status.value,
                    "workingFiles": list(result.working_files),
                },
            )

            previous = state.current_phase
            next_phase = resolve_next_phase(previous, result.next_phase)
            if result.next_phase is not None and next_phase != result.next_phase:
                self.logger.warn(
                    "Ignoring invalid next phase override",
                    metadata={
                        "issueId": state.issue_id,
                        "from": previous.value,
                        "requested": result.next_phase.value,
                        "applied": next_phase.value,
                    },
                )

            state.working_files = merge_working_files(state.working_files, result.working_files)
            state.phase_history.append(result)
            state.updated_at = self._now()
            state.current_phase = next_phase

            self.logger.log_workflow(
                WorkflowLog(
                    phase=next_phase.value,
                    previous_phase=previous.value,
                    working_files=tuple(state.working_files),
                ),
                metadata={
                    "event": "phase_completed",
                    "issueId": state.issue_id,
                    "completedPhase": previous.value,
                    "nextPhase": next_phase.value,
                    "status": result.status.value,
                    "totalWorkingFiles": len(state.working_files),
                },
            )
            return state.snapshot()

    def reset(self) -> str | None:
        """
        Discard the active workflow. Not an error when there is none.

        Returns the discarded issue id, or None.
        """
        with self._lock:
            previous = self._state.issue_id if self._state is not None else None
            self.logger.info(
                "Resetting workflow",
                metadata={"previousWorkflow": previous if previous is not None else "none"},
            )
            self._state = None
            return previous
