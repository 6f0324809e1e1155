#!/usr/bin/env python3
# Ticket: 0001_phase_workflow_server
# Design: DESIGN.md
"""
Task Runner MCP Server

FastMCP server that guides an agent through the six-phase issue workflow.
Supports both stdio (local development) and SSE transports.

Usage (stdio mode — used by MCP clients):
    task-runner-mcp --project-root <path>

Usage (SSE mode):
    task-runner-mcp --project-root <path> --transport sse --port 8080

MCP Tools exposed:
    start_issue_workflow — start a workflow for an issue, returns issue_start guidance
    complete_phase       — report the current phase done, returns next guidance
    get_current_phase    — guidance for the active phase
    get_workflow_status  — progress summary
    reset_workflow       — discard the active workflow

MCP Resources:
    workflow://status    — status summary as JSON

Every tool call is recorded in the audit log as a request entry followed by a
response entry (with timing, or with an error object if the call failed).
Under the stdio transport, stdout carries the protocol, so console log lines
are all written to stderr.
"""

import argparse
import itertools
import json
import sys
import time
from pathlib import Path
from typing import Any, Callable

from mcp.server.fastmcp import FastMCP

from ..engine.audit import AuditLogger
from ..engine.config import ServerConfig, load_server_config
from ..engine.errors import InvalidArgumentError, WorkflowError
from ..engine.manager import WorkflowManager
from ..engine.models import (
    Phase,
    ProtocolError,
    ProtocolMessage,
    ProtocolMessageType,
    ResultStatus,
    TimingInfo,
)
from ..engine.phases import TOTAL_PHASES
from ..engine.schema import parse_phase_result, parse_start_input
from . import formatting


# JSON-RPC error codes recorded for failed calls
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
WORKFLOW_STATE_ERROR = -32000


def _now_ms() -> float:
    return time.time() * 1000


class WorkflowServer:
    """
    Phase orchestration façade.

    Owns the WorkflowManager and the AuditLogger, validates tool input,
    and renders results as markdown. The FastMCP tools delegate to this class.
    """

    def __init__(self, logger: AuditLogger, manager: WorkflowManager | None = None):
        self.logger = logger
        self.manager = manager or WorkflowManager(logger)
        self._request_ids = itertools.count(1)

    @classmethod
    def from_config(cls, config: ServerConfig, **streams: Any) -> "WorkflowServer":
        return cls(config.create_logger(**streams))

    def close(self) -> None:
        """Flush and close the audit log."""
        self.logger.close()

    # -----------------------------------------------------------------------
    # Protocol logging
    # -----------------------------------------------------------------------

    def _dispatch(self, method: str, params: dict[str, Any], handler: Callable[[], str]) -> str:
        """Run handler, recording the request and its response or error."""
        request_id = next(self._request_ids)
        start = _now_ms()
        self.logger.log_protocol(
            ProtocolMessage(
                type=ProtocolMessageType.REQUEST,
                id=request_id,
                method=method,
                params=params,
            )
        )
        try:
            text = handler()
        except Exception as exc:
            if isinstance(exc, InvalidArgumentError):
                code = INVALID_PARAMS
            elif isinstance(exc, WorkflowError):
                code = WORKFLOW_STATE_ERROR
            else:
                code = INTERNAL_ERROR
                self.logger.error(f"Unexpected error in {method}", error=exc)
            self.logger.log_protocol(
                ProtocolMessage(
                    type=ProtocolMessageType.RESPONSE,
                    id=request_id,
                    method=method,
                    error=ProtocolError(code=code, message=str(exc)),
                ),
                TimingInfo.between(start, _now_ms()),
            )
            raise

        self.logger.log_protocol(
            ProtocolMessage(
                type=ProtocolMessageType.RESPONSE,
                id=request_id,
                method=method,
                result={"length": len(text)},
            ),
            TimingInfo.between(start, _now_ms()),
        )
        return text

    # -----------------------------------------------------------------------
    # Workflow operations
    # -----------------------------------------------------------------------

    def start_issue_workflow(self, issue_number: str) -> str:
        """Start a workflow and return the issue_start guidance."""
        params = {"issueNumber": issue_number}

        def handler() -> str:
            try:
                issue_id = parse_start_input(params)
            except InvalidArgumentError as exc:
                self.logger.error("Failed to start issue workflow", error=exc, metadata=params)
                raise
            workflow = self.manager.start(issue_id)
            instruction = self.manager.current_instruction()
            if instruction is None:
                raise RuntimeError("Failed to get current phase instruction after starting workflow")
            return formatting.format_phase_instruction(workflow.issue_id, instruction)

        return self._dispatch("start_issue_workflow", params, handler)

    def complete_phase(self, phase_result: dict[str, Any]) -> str:
        """
        Complete the current phase.

        Returns the terminal summary when the workflow has reached completion
        with a 'completed' result, otherwise the transition message followed
        by the next phase's guidance.
        """

        def handler() -> str:
            try:
                result = parse_phase_result(phase_result)
            except InvalidArgumentError as exc:
                self.logger.error(
                    "Failed to complete phase",
                    error=exc,
                    metadata={"phaseResult": phase_result},
                )
                raise
            workflow = self.manager.complete(result)

            if workflow.current_phase == Phase.COMPLETION and result.status == ResultStatus.COMPLETED:
                return formatting.format_workflow_completion(workflow)

            instruction = self.manager.current_instruction()
            if instruction is None:
                raise RuntimeError("Failed to get next phase instruction after phase completion")
            return formatting.format_phase_transition(
                workflow, result.phase_name.value, instruction, TOTAL_PHASES
            )

        return self._dispatch("complete_phase", {"phaseResult": phase_result}, handler)

    def get_current_phase(self) -> str:
        def handler() -> str:
            workflow = self.manager.current_workflow()
            instruction = self.manager.current_instruction()
            if workflow is None or instruction is None:
                return formatting.NO_ACTIVE_WORKFLOW
            return formatting.format_phase_instruction(workflow.issue_id, instruction)

        return self._dispatch("get_current_phase", {}, handler)

    def get_workflow_status(self) -> str:
        def handler() -> str:
            return formatting.format_workflow_status(
                self.manager.status(), self.manager.current_workflow()
            )

        return self._dispatch("get_workflow_status", {}, handler)

    def reset_workflow(self) -> str:
        def handler() -> str:
            return formatting.format_reset(self.manager.reset())

        return self._dispatch("reset_workflow", {}, handler)

    def get_status_document(self) -> dict[str, Any]:
        """Status plus full workflow state, for the workflow://status resource."""
        document = self.manager.status().to_dict()
        workflow = self.manager.current_workflow()
        if workflow is not None:
            document["workflow"] = workflow.to_dict()
        return document


# ---------------------------------------------------------------------------
# FastMCP server factory
# ---------------------------------------------------------------------------


def create_mcp_server(
    ws: WorkflowServer,
    name: str = "task-runner",
    port: int | None = None,
) -> FastMCP:
    """Create a FastMCP server whose tools delegate to ws."""
    settings: dict[str, Any] = {}
    if port is not None:
        settings["port"] = port
    mcp = FastMCP(name, **settings)

    # Argument names are the client-facing contract: issueNumber, and a
    # phaseResult object with camelCase keys.

    @mcp.tool()
    def start_issue_workflow(issueNumber: str) -> str:
        """
        Start a new workflow for the specified GitHub Issue number and move
        to the first phase (issue_start).

        Fails if a workflow is already active; call reset_workflow first.

        Args:
            issueNumber: GitHub Issue number to start the workflow for
        """
        return ws.start_issue_workflow(issueNumber)

    @mcp.tool()
    def complete_phase(phaseResult: dict[str, Any]) -> str:
        """
        Complete the current phase and transition to the next phase.

        Default progression: issue_start → implementation → quality_check →
        pr_creation → completion. After pr_creation, pass nextPhase='fix' if
        CI failed; the engine does not inspect CI itself. fix always returns
        to quality_check.

        Args:
            phaseResult: Result of the phase being completed, with keys
                phaseName (must be the current phase), status ('completed',
                'failed' or 'skipped'), workingFiles (list of paths),
                completedTasks (list of task descriptions), completedAt
                (ISO 8601 timestamp), and optional notes and nextPhase
                (used only if it is a valid transition)
        """
        return ws.complete_phase(phaseResult)

    @mcp.tool()
    def get_current_phase() -> str:
        """Get the current phase instruction and required actions for the active workflow."""
        return ws.get_current_phase()

    @mcp.tool()
    def get_workflow_status() -> str:
        """Get the overall progress and status of the current workflow."""
        return ws.get_workflow_status()

    @mcp.tool()
    def reset_workflow() -> str:
        """Discard the active workflow so a new one can be started."""
        return ws.reset_workflow()

    @mcp.resource("workflow://status")
    def status_resource() -> str:
        """Workflow status and full state as JSON."""
        return json.dumps(ws.get_status_document(), indent=2)

    return mcp


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="task-runner-mcp",
        description="Task Runner MCP Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # MCP server mode (stdio)
    task-runner-mcp --project-root .

    # SSE mode
    task-runner-mcp --project-root . --transport sse --port 8080
        """,
    )
    parser.add_argument("--project-root", default=".", help="Path to consuming repo root")
    parser.add_argument("--config", default=None, help="Path to config.yaml (default: .workflow/config.yaml)")
    parser.add_argument("--transport", choices=["stdio", "sse"], default="stdio")
    parser.add_argument("--port", type=int, default=8080, help="Port for SSE mode")
    parser.add_argument("--log-level", choices=["debug", "info", "warn", "error"], default=None)
    parser.add_argument("--log-dir", default=None, help="Directory for JSON Lines audit logs")
    parser.add_argument("--session-id", default=None, help="Audit log session id")
    parser.add_argument("--no-console", action="store_true", help="Disable console log output")
    parser.add_argument("--no-file-log", action="store_true", help="Disable the JSON Lines audit log")
    return parser


def resolve_config(args: argparse.Namespace) -> ServerConfig:
    config = load_server_config(Path(args.project_root), args.config)
    return config.with_overrides(
        log_level=args.log_level,
        log_dir=args.log_dir,
        session_id=args.session_id,
        console_output=False if args.no_console else None,
        file_output=False if args.no_file_log else None,
    )


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    try:
        config = resolve_config(args)
    except (ValueError, OSError) as exc:
        print(f"Error: invalid configuration: {exc}", file=sys.stderr)
        sys.exit(1)

    # stdout belongs to the protocol under stdio
    streams = {"stdout": sys.stderr} if args.transport == "stdio" else {}
    ws = WorkflowServer.from_config(config, **streams)
    ws.logger.info(
        "Task runner MCP server starting",
        metadata={"transport": args.transport, "sessionId": ws.logger.session_id},
    )
    try:
        mcp_server = create_mcp_server(
            ws,
            config.server_name,
            port=args.port if args.transport == "sse" else None,
        )
        mcp_server.run(transport=args.transport)
    finally:
        ws.logger.info("Task runner MCP server stopping")
        ws.close()


if __name__ == "__main__":
    main()
