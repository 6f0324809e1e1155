#!/usr/bin/env python3
# Ticket: 0001_phase_workflow_server
# Design: DESIGN.md
"""
Workflow Engine Phase Catalog

Static guidance for each of the six phases: what must already be true
(preconditions), what "done" looks like (acceptance criteria) and the work to
do (tasks). The catalog is built once at import time and exposed read-only.
"""

from types import MappingProxyType
from typing import Mapping

from .errors import UnknownPhaseError
from .models import Phase, PhaseInstruction


# Default progression order, used for display and for the phase count.
PHASE_ORDER: tuple[Phase, ...] = (
    Phase.ISSUE_START,
    Phase.IMPLEMENTATION,
    Phase.QUALITY_CHECK,
    Phase.PR_CREATION,
    Phase.FIX,
    Phase.COMPLETION,
)

TOTAL_PHASES = len(PHASE_ORDER)


# ---------------------------------------------------------------------------
# Phase definitions
# ---------------------------------------------------------------------------

_ISSUE_START = PhaseInstruction(
    phase_name=Phase.ISSUE_START,
    preconditions=(
        "Issue number has been specified",
        "User has development environment ready",
        "Repository is accessible",
    ),
    acceptance_criteria=(
        "Issue content has been retrieved and displayed",
        "Work content has been critically reviewed",
        "Work branch has been created if needed",
        "Initial working files list has been established",
    ),
    tasks=(
        "Retrieve Issue content from GitHub",
        "Display Issue details to user",
        "Perform critical review of work requirements",
        "Create or switch to appropriate work branch",
        "Initialize working files list",
        "Confirm readiness to proceed with implementation",
    ),
)

_IMPLEMENTATION = PhaseInstruction(
    phase_name=Phase.IMPLEMENTATION,
    preconditions=(
        "Issue work has been started",
        "Work requirements are understood",
        "Development environment is ready",
    ),
    acceptance_criteria=(
        "All required code changes have been implemented",
        "Working files list has been updated with modifications",
        "Code follows project conventions and standards",
        "Implementation is ready for quality checks",
    ),
    tasks=(
        "Implement required code changes",
        "Update working files list as modifications are made",
        "Follow existing code patterns and conventions",
        "Add or update comments where necessary",
        "Ensure implementation meets Issue requirements",
        "Prepare code for quality validation",
    ),
)

_QUALITY_CHECK = PhaseInstruction(
    phase_name=Phase.QUALITY_CHECK,
    preconditions=(
        "Implementation has been completed",
        "Working files are ready for validation",
        "Project has quality check scripts available",
    ),
    acceptance_criteria=(
        "Lint checks pass without errors",
        "Static type checking passes",
        "Unit tests pass successfully",
        "E2E tests pass (if available)",
        "All quality gates are satisfied",
    ),
    tasks=(
        "Run the project linter to check code style",
        "Run the type checker",
        "Run the unit test suite",
        "Run E2E tests if they exist",
        "Fix any quality issues found",
        "Verify all checks pass before proceeding",
    ),
)

_PR_CREATION = PhaseInstruction(
    phase_name=Phase.PR_CREATION,
    preconditions=(
        "Quality checks have passed",
        "Code is ready for review",
        "Work branch exists with commits",
    ),
    acceptance_criteria=(
        "Work branch has been confirmed",
        "Pull Request has been created successfully",
        "CI/CD pipeline has been triggered",
        "CI results are being monitored",
    ),
    tasks=(
        "Verify current branch and commit status",
        "Push changes to remote repository",
        "Create Pull Request with proper description",
        "Link PR to original Issue",
        "Monitor CI/CD pipeline execution",
        "Check for any CI failures",
    ),
)

# Reached only when the caller passes next_phase="fix" on pr_creation.
_FIX = PhaseInstruction(
    phase_name=Phase.FIX,
    preconditions=(
        "CI/CD pipeline has failed",
        "Error details are available",
        "Fixes are required before merge",
    ),
    acceptance_criteria=(
        "CI failure causes have been identified",
        "Necessary fixes have been implemented",
        "Quality checks pass again after fixes",
        "CI/CD pipeline succeeds",
    ),
    tasks=(
        "Analyze CI/CD failure details",
        "Identify root causes of failures",
        "Implement necessary fixes",
        "Re-run quality checks locally",
        "Push fixes and monitor CI again",
        "Repeat until CI passes",
    ),
)

_COMPLETION = PhaseInstruction(
    phase_name=Phase.COMPLETION,
    preconditions=(
        "Pull Request is ready for merge",
        "All CI checks have passed",
        "Code review is approved (if required)",
    ),
    acceptance_criteria=(
        "Pull Request has been merged successfully",
        "Retrospective comment has been created",
        "Issue has been updated with completion details",
        "Work branch has been cleaned up",
    ),
    tasks=(
        "Merge Pull Request to main branch",
        "Create retrospective comment about the work",
        "Post completion comment to original Issue",
        "Clean up work branch if appropriate",
        "Update Issue status to closed",
        "Document any lessons learned",
    ),
)


PHASE_INSTRUCTIONS: Mapping[Phase, PhaseInstruction] = MappingProxyType({
    instruction.phase_name: instruction
    for instruction in (
        _ISSUE_START,
        _IMPLEMENTATION,
        _QUALITY_CHECK,
        _PR_CREATION,
        _FIX,
        _COMPLETION,
    )
})


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


def coerce_phase(value: "Phase | str") -> Phase:
    """
    Convert a phase tag to Phase.

    Raises:
        UnknownPhaseError: if value is not one of the six phase tags
    """
    if isinstance(value, Phase):
        return value
    try:
        return Phase(value)
    except ValueError:
        raise UnknownPhaseError(value) from None


def get_instruction(phase: "Phase | str") -> PhaseInstruction:
    """
    Return the guidance for a phase.

    Raises:
        UnknownPhaseError: if phase is not one of the six phase tags
    """
    return PHASE_INSTRUCTIONS[coerce_phase(phase)]
