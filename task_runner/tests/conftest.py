"""
pytest configuration for task_runner tests.

Shared fixtures: a deterministic clock, a file-backed AuditLogger writing into
tmp_path, and a WorkflowManager wired to it.
"""

import pytest

from task_runner.engine.audit import AuditLogger
from task_runner.engine.manager import WorkflowManager
from task_runner.tests.helpers import StepClock


@pytest.fixture
def log_dir(tmp_path):
    return tmp_path / "logs"


@pytest.fixture
def logger(log_dir):
    audit_logger = AuditLogger(
        level="debug",
        console_output=False,
        file_output=True,
        log_dir=log_dir,
        session_id="test-session",
    )
    yield audit_logger
    audit_logger.close()


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def manager(logger, clock):
    return WorkflowManager(logger, clock=clock)
