#!/usr/bin/env python3
# Ticket: 0001_phase_workflow_server
# Design: DESIGN.md
"""
Markdown renderings of workflow state returned to MCP clients.
"""

from datetime import datetime

from ..engine.models import PhaseInstruction, WorkflowState, WorkflowStatus, format_iso


NO_ACTIVE_WORKFLOW = (
    "No active workflow. Use `start_issue_workflow` to begin a new workflow."
)

NO_ACTIVE_WORKFLOW_STATUS = (
    "**No Active Workflow**\n\n"
    "Use `start_issue_workflow` to begin working on an issue."
)


def format_duration(started_at: datetime, ended_at: datetime) -> str:
    """Human duration such as '1h 02m 03s' or '45s'."""
    total = max(0, int((ended_at - started_at).total_seconds()))
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes:02d}m {seconds:02d}s"
    if minutes:
        return f"{minutes}m {seconds:02d}s"
    return f"{seconds}s"


def format_phase_instruction(issue_id: str, instruction: PhaseInstruction) -> str:
    lines = [
        f"**Current Phase: {instruction.phase_name.value}**",
        f"**Issue**: #{issue_id}",
        "",
        "## Preconditions",
        *(f"- {p}" for p in instruction.preconditions),
        "",
        "## Acceptance Criteria",
        *(f"- {a}" for a in instruction.acceptance_criteria),
        "",
        "## Tasks to Complete",
        *(f"{i}. {t}" for i, t in enumerate(instruction.tasks, start=1)),
        "",
        "**Next Step**: Complete the tasks above, then use `complete_phase` "
        "to report completion and move to the next phase.",
    ]
    return "\n".join(lines)


def format_phase_transition(
    state: WorkflowState,
    completed_phase: str,
    instruction: PhaseInstruction,
    total_phases: int,
) -> str:
    lines = [
        f"**Phase Completed**: {completed_phase}",
        f"**Now Moving to**: {instruction.phase_name.value}",
        f"**Issue**: #{state.issue_id}",
        f"**Progress**: {len(state.phase_history)}/{total_phases} phases completed",
        f"**Working Files**: {len(state.working_files)} files tracked",
        "",
        "---",
        "",
        format_phase_instruction(state.issue_id, instruction),
    ]
    return "\n".join(lines)


def format_workflow_completion(state: WorkflowState) -> str:
    lines = [
        "**Workflow Completed Successfully!**",
        f"**Issue**: #{state.issue_id}",
        f"**Duration**: {format_iso(state.started_at)} → {format_iso(state.updated_at)} "
        f"({format_duration(state.started_at, state.updated_at)})",
        f"**Total Files Worked**: {len(state.working_files)}",
        f"**Phases Completed**: {len(state.phase_history)}",
        "",
        "## Phase History",
        *(
            f"- {r.phase_name.value} ({r.status.value}) - {len(r.completed_tasks)} tasks"
            for r in state.phase_history
        ),
        "",
        "**Workflow is now complete.** Use `reset_workflow`, then "
        "`start_issue_workflow` to begin work on a new issue.",
    ]
    return "\n".join(lines)


def format_workflow_status(status: WorkflowStatus, state: WorkflowState | None) -> str:
    if not status.has_active_workflow or state is None:
        return NO_ACTIVE_WORKFLOW_STATUS

    lines = [
        "**Workflow Status**",
        f"**Issue**: #{status.issue_id}",
        f"**Current Phase**: {status.current_phase.value if status.current_phase else 'unknown'}",
        f"**Progress**: {status.completed_phases}/{status.total_phases} phases completed",
        f"**Working Files**: {status.working_files_count} files being tracked",
        "",
    ]
    if state.phase_history:
        lines.append("## Completed Phases")
        lines.extend(
            f"- {r.phase_name.value} ({r.status.value}) - {r.completed_at}"
            for r in state.phase_history
        )
        lines.append("")

    lines.append("Use `get_current_phase` to see current phase details and required actions.")
    return "\n".join(lines)


def format_reset(previous_issue_id: str | None) -> str:
    if previous_issue_id is None:
        return "No active workflow to reset."
    return (
        f"Workflow for issue #{previous_issue_id} has been reset. "
        "Use `start_issue_workflow` to begin a new workflow."
    )
