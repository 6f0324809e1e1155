"""
Tests for server/server.py and server/formatting.py

Validates:
- Each tool returns the expected markdown guidance
- complete_phase returns the terminal summary only for a 'completed' result
  that lands on completion
- Errors surface to the caller and are recorded as protocol error responses
- Request/response pairs are logged with timing, in order
- The FastMCP factory registers every tool
- main() argument handling resolves configuration
"""

import asyncio
import json
from datetime import timedelta

import pytest

from task_runner.engine.config import ServerConfig
from task_runner.engine.errors import (
    AlreadyActiveError,
    InvalidArgumentError,
    NoActiveWorkflowError,
    PhaseMismatchError,
)
from task_runner.engine.manager import WorkflowManager
from task_runner.server import formatting
from task_runner.server.server import (
    INVALID_PARAMS,
    WORKFLOW_STATE_ERROR,
    WorkflowServer,
    build_parser,
    create_mcp_server,
    main,
    resolve_config,
)
from task_runner.tests.helpers import T0, StepClock, read_jsonl


@pytest.fixture
def ws(logger):
    server = WorkflowServer(logger, WorkflowManager(logger, clock=StepClock()))
    yield server
    server.close()


def result_payload(phase: str, status: str = "completed", **extra):
    data = {
        "phaseName": phase,
        "status": status,
        "workingFiles": [f"{phase}.py"],
        "completedTasks": ["one"],
        "completedAt": "2026-01-05T10:00:00Z",
    }
    data.update(extra)
    return data


def run_default_path(ws, stop_before: str | None = None) -> str:
    text = ""
    for phase in ("issue_start", "implementation", "quality_check", "pr_creation"):
        if phase == stop_before:
            break
        text = ws.complete_phase(result_payload(phase))
    return text


# ---------------------------------------------------------------------------
# Guidance responses
# ---------------------------------------------------------------------------


def test_start_returns_issue_start_guidance(ws):
    text = ws.start_issue_workflow("42")

    assert "**Current Phase: issue_start**" in text
    assert "**Issue**: #42" in text
    assert "## Preconditions" in text
    assert "## Acceptance Criteria" in text
    assert "1. Retrieve Issue content from GitHub" in text
    assert "`complete_phase`" in text


def test_complete_returns_transition_and_next_guidance(ws):
    ws.start_issue_workflow("42")
    text = ws.complete_phase(result_payload("issue_start"))

    assert "**Phase Completed**: issue_start" in text
    assert "**Now Moving to**: implementation" in text
    assert "**Progress**: 1/6 phases completed" in text
    assert "**Working Files**: 1 files tracked" in text
    assert "**Current Phase: implementation**" in text


def test_completion_summary(ws):
    ws.start_issue_workflow("42")
    text = run_default_path(ws)

    assert "**Workflow Completed Successfully!**" in text
    assert "**Issue**: #42" in text
    assert "**Total Files Worked**: 4" in text
    assert "**Phases Completed**: 4" in text
    history = [line for line in text.splitlines() if line.startswith("- ")]
    assert history == [
        "- issue_start (completed) - 1 tasks",
        "- implementation (completed) - 1 tasks",
        "- quality_check (completed) - 1 tasks",
        "- pr_creation (completed) - 1 tasks",
    ]


def test_failed_result_at_completion_returns_guidance_not_summary(ws):
    ws.start_issue_workflow("42")
    run_default_path(ws, stop_before="pr_creation")
    text = ws.complete_phase(result_payload("pr_creation", status="failed"))

    assert "Workflow Completed Successfully" not in text
    assert "**Current Phase: completion**" in text


def test_fix_override_returns_fix_guidance(ws):
    ws.start_issue_workflow("42")
    run_default_path(ws, stop_before="pr_creation")
    text = ws.complete_phase(result_payload("pr_creation", status="failed", nextPhase="fix"))

    assert "**Now Moving to**: fix" in text
    assert "Analyze CI/CD failure details" in text


def test_get_current_phase(ws):
    assert ws.get_current_phase() == formatting.NO_ACTIVE_WORKFLOW
    ws.start_issue_workflow("42")
    assert "**Current Phase: issue_start**" in ws.get_current_phase()


def test_get_workflow_status(ws):
    assert ws.get_workflow_status() == formatting.NO_ACTIVE_WORKFLOW_STATUS

    ws.start_issue_workflow("42")
    ws.complete_phase(result_payload("issue_start"))
    text = ws.get_workflow_status()

    assert "**Current Phase**: implementation" in text
    assert "**Progress**: 1/6 phases completed" in text
    assert "## Completed Phases" in text
    assert "- issue_start (completed) - 2026-01-05T10:00:00Z" in text


def test_reset_workflow(ws):
    assert ws.reset_workflow() == "No active workflow to reset."
    ws.start_issue_workflow("42")
    assert "#42 has been reset" in ws.reset_workflow()
    assert ws.get_current_phase() == formatting.NO_ACTIVE_WORKFLOW


def test_status_document(ws):
    assert ws.get_status_document() == {
        "hasActiveWorkflow": False,
        "totalPhases": 6,
        "completedPhases": 0,
        "workingFilesCount": 0,
    }
    ws.start_issue_workflow("42")
    document = ws.get_status_document()
    assert document["currentPhase"] == "issue_start"
    assert document["workflow"]["issueId"] == "42"
    assert document["workflow"]["startedAt"] == "2026-01-05T09:00:00.000Z"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


def test_errors_surface_verbatim(ws):
    with pytest.raises(NoActiveWorkflowError):
        ws.complete_phase(result_payload("issue_start"))

    ws.start_issue_workflow("42")
    with pytest.raises(AlreadyActiveError):
        ws.start_issue_workflow("43")
    with pytest.raises(PhaseMismatchError):
        ws.complete_phase(result_payload("fix"))
    with pytest.raises(InvalidArgumentError):
        ws.complete_phase(result_payload("issue_start", completedAt="not a time"))
    with pytest.raises(InvalidArgumentError):
        ws.start_issue_workflow("")


def test_validation_error_leaves_state_untouched(ws):
    ws.start_issue_workflow("42")
    before = ws.manager.current_workflow()
    with pytest.raises(InvalidArgumentError):
        ws.complete_phase(result_payload("issue_start", status="done"))
    assert ws.manager.current_workflow() == before


def test_protocol_error_codes_are_logged(ws, logger):
    with pytest.raises(InvalidArgumentError):
        ws.start_issue_workflow("")
    with pytest.raises(NoActiveWorkflowError):
        ws.complete_phase(result_payload("issue_start"))
    logger.close()

    records = read_jsonl(logger.log_file_path)
    failures = [
        r for r in records
        if r.get("protocol", {}).get("type") == "response" and "error" in r["protocol"]
    ]
    assert [f["protocol"]["error"]["code"] for f in failures] == [INVALID_PARAMS, WORKFLOW_STATE_ERROR]
    assert all("duration" in f["timing"] for f in failures)

    error_entries = [r for r in records if r["level"] == "error"]
    assert [e["message"] for e in error_entries] == [
        "Failed to start issue workflow",
        "Failed to complete phase",
    ]


# ---------------------------------------------------------------------------
# Protocol logging
# ---------------------------------------------------------------------------


def test_requests_and_responses_are_paired(ws, logger):
    ws.start_issue_workflow("42")
    ws.get_workflow_status()
    logger.close()

    records = read_jsonl(logger.log_file_path)
    assert [r["sequenceNumber"] for r in records] == list(range(len(records)))

    exchanges = [r["protocol"] for r in records if "protocol" in r]
    assert [(p["type"], p["method"], p["id"]) for p in exchanges] == [
        ("request", "start_issue_workflow", 1),
        ("response", "start_issue_workflow", 1),
        ("request", "get_workflow_status", 2),
        ("response", "get_workflow_status", 2),
    ]
    assert exchanges[0]["params"] == {"issueNumber": "42"}

    # The workflow transition is logged between the request and its response
    kinds = ["protocol" if "protocol" in r else "workflow" if "workflow" in r else "other" for r in records]
    first_response = kinds.index("protocol", 1)
    assert "workflow" in kinds[1:first_response]


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("seconds,expected", [
    (0, "0s"),
    (45, "45s"),
    (125, "2m 05s"),
    (3723, "1h 02m 03s"),
])
def test_format_duration(seconds, expected):
    assert formatting.format_duration(T0, T0 + timedelta(seconds=seconds)) == expected


def test_format_duration_clamps_negative():
    assert formatting.format_duration(T0, T0 - timedelta(seconds=5)) == "0s"


# ---------------------------------------------------------------------------
# FastMCP factory and CLI
# ---------------------------------------------------------------------------


def test_create_mcp_server_registers_tools(ws):
    mcp = create_mcp_server(ws, "test-runner")
    tools = asyncio.run(mcp.list_tools())
    assert {tool.name for tool in tools} == {
        "start_issue_workflow",
        "complete_phase",
        "get_current_phase",
        "get_workflow_status",
        "reset_workflow",
    }


def test_mcp_tool_calls_use_camel_case_arguments(ws):
    mcp = create_mcp_server(ws)
    asyncio.run(mcp.call_tool("start_issue_workflow", {"issueNumber": "7"}))
    asyncio.run(mcp.call_tool("complete_phase", {"phaseResult": result_payload("issue_start")}))

    workflow = ws.manager.current_workflow()
    assert workflow.issue_id == "7"
    assert workflow.current_phase.value == "implementation"
    assert workflow.working_files == ["issue_start.py"]


def test_mcp_tool_schemas_expose_contract_argument_names(ws):
    tools = {tool.name: tool for tool in asyncio.run(create_mcp_server(ws).list_tools())}
    assert list(tools["start_issue_workflow"].inputSchema["properties"]) == ["issueNumber"]
    assert list(tools["complete_phase"].inputSchema["properties"]) == ["phaseResult"]


def test_resolve_config_applies_cli_overrides(tmp_path):
    (tmp_path / ".workflow").mkdir()
    (tmp_path / ".workflow" / "config.yaml").write_text("logging:\n  level: info\n", encoding="utf-8")

    args = build_parser().parse_args([
        "--project-root", str(tmp_path),
        "--log-level", "debug",
        "--no-file-log",
        "--session-id", "cli",
    ])
    config = resolve_config(args)

    assert isinstance(config, ServerConfig)
    assert config.log_level.value == "debug"
    assert config.file_output is False
    assert config.console_output is True
    assert config.session_id == "cli"


def test_status_resource_is_json(ws):
    ws.start_issue_workflow("9")
    assert json.loads(json.dumps(ws.get_status_document()))["issueId"] == "9"


@pytest.mark.parametrize("content", ["logging: {level: info\n", "- not a mapping\n"])
def test_main_reports_bad_config_without_traceback(tmp_path, capsys, content):
    (tmp_path / ".workflow").mkdir()
    (tmp_path / ".workflow" / "config.yaml").write_text(content, encoding="utf-8")

    with pytest.raises(SystemExit) as exc_info:
        main(["--project-root", str(tmp_path)])

    assert exc_info.value.code == 1
    assert "Error: invalid configuration" in capsys.readouterr().err
