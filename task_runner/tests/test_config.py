"""
Tests for engine/config.py

Validates:
- load_server_config reads .workflow/config.yaml
- Sensible defaults when the file is absent or empty
- Relative log directories resolve against the project root
- Invalid values are rejected
- with_overrides() and create_logger()
"""

from pathlib import Path

import pytest

from task_runner.engine.config import ServerConfig, load_server_config
from task_runner.engine.models import LogLevel


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root(tmp_path):
    """Create a minimal project root with .workflow/ directory."""
    workflow_dir = tmp_path / ".workflow"
    workflow_dir.mkdir()
    return tmp_path


def write_yaml(path: Path, content: str) -> None:
    path.write_text(content, encoding="utf-8")


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


def test_load_config_defaults_when_no_file(project_root):
    config = load_server_config(project_root)

    assert config.log_level is LogLevel.INFO
    assert config.console_output is True
    assert config.file_output is True
    assert config.session_id is None
    assert config.server_name == "task-runner"
    assert Path(config.log_dir) == project_root / "logs"


def test_load_config_empty_file(project_root):
    write_yaml(project_root / ".workflow" / "config.yaml", "")
    assert load_server_config(project_root).log_level is LogLevel.INFO


# ---------------------------------------------------------------------------
# config.yaml parsing
# ---------------------------------------------------------------------------


def test_load_config_reads_logging_section(project_root):
    write_yaml(
        project_root / ".workflow" / "config.yaml",
        "logging:\n"
        "  level: warn\n"
        "  console: false\n"
        "  file: true\n"
        "  directory: build/audit\n"
        "  session_id: fixed-session\n"
        "server:\n"
        "  name: my-runner\n",
    )
    config = load_server_config(project_root)

    assert config.log_level is LogLevel.WARN
    assert config.console_output is False
    assert config.file_output is True
    assert Path(config.log_dir) == project_root / "build" / "audit"
    assert config.session_id == "fixed-session"
    assert config.server_name == "my-runner"


def test_absolute_log_dir_kept(project_root, tmp_path):
    target = tmp_path / "elsewhere"
    write_yaml(project_root / ".workflow" / "config.yaml", f"logging:\n  directory: {target}\n")
    assert Path(load_server_config(project_root).log_dir) == target


def test_explicit_config_path(project_root, tmp_path):
    custom = tmp_path / "custom.yaml"
    write_yaml(custom, "logging:\n  level: debug\n")
    assert load_server_config(project_root, custom).log_level is LogLevel.DEBUG


def test_unknown_level_rejected(project_root):
    write_yaml(project_root / ".workflow" / "config.yaml", "logging:\n  level: loud\n")
    with pytest.raises(ValueError, match="loud"):
        load_server_config(project_root)


def test_non_boolean_switch_rejected(project_root):
    write_yaml(project_root / ".workflow" / "config.yaml", "logging:\n  console: maybe\n")
    with pytest.raises(ValueError, match="logging.console"):
        load_server_config(project_root)


# ---------------------------------------------------------------------------
# Overrides and logger construction
# ---------------------------------------------------------------------------


def test_with_overrides_skips_none():
    config = ServerConfig(log_dir="logs").with_overrides(
        log_level="error", log_dir=None, file_output=False, console_output=None
    )
    assert config.log_level is LogLevel.ERROR
    assert config.log_dir == "logs"
    assert config.file_output is False
    assert config.console_output is True


def test_create_logger_applies_settings(tmp_path):
    config = ServerConfig(
        log_level=LogLevel.WARN,
        console_output=False,
        log_dir=str(tmp_path / "logs"),
        session_id="cfg",
    )
    audit_logger = config.create_logger()
    try:
        assert audit_logger.level is LogLevel.WARN
        assert audit_logger.session_id == "cfg"
        assert audit_logger.log_file_path.parent == tmp_path / "logs"
        assert audit_logger.info("filtered") is None
    finally:
        audit_logger.close()


@pytest.mark.parametrize("content", [
    "- just\n- a list\n",
    "plain string\n",
    "logging: [debug]\n",
])
def test_non_mapping_documents_rejected(project_root, content):
    write_yaml(project_root / ".workflow" / "config.yaml", content)
    with pytest.raises(ValueError, match="mapping"):
        load_server_config(project_root)


def test_malformed_yaml_rejected(project_root):
    write_yaml(project_root / ".workflow" / "config.yaml", "logging: {level: info\n")
    with pytest.raises(ValueError, match="not valid YAML"):
        load_server_config(project_root)
