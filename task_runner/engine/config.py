#!/usr/bin/env python3
# Ticket: 0001_phase_workflow_server
# Design: DESIGN.md
"""
Workflow Engine Configuration Reader

Reads server configuration from the consuming repository's .workflow/
directory:
- .workflow/config.yaml  — audit log level, sinks, log directory, server name

The file is optional and every setting has a default. Command-line flags on
the server override whatever the file says.

Example config.yaml:

    logging:
      level: info          # debug | info | warn | error
      console: true
      file: true
      directory: logs      # relative to the project root
      session_id: null     # generated per process when absent
    server:
      name: task-runner
"""

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, TextIO

import yaml

from .audit import AuditLogger
from .models import LogLevel


DEFAULT_SERVER_NAME = "task-runner"


@dataclass(frozen=True)
class ServerConfig:
    """Resolved runtime configuration."""
    log_level: LogLevel = LogLevel.INFO
    console_output: bool = True
    file_output: bool = True
    log_dir: str = "logs"
    session_id: str | None = None
    server_name: str = DEFAULT_SERVER_NAME

    def with_overrides(self, **overrides: Any) -> "ServerConfig":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        if "log_level" in changes:
            changes["log_level"] = LogLevel.parse(changes["log_level"])
        return replace(self, **changes)

    def create_logger(
        self,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> AuditLogger:
        return AuditLogger(
            level=self.log_level,
            console_output=self.console_output,
            file_output=self.file_output,
            log_dir=self.log_dir,
            session_id=self.session_id,
            stdout=stdout,
            stderr=stderr,
        )


# ---------------------------------------------------------------------------
# config.yaml loader
# ---------------------------------------------------------------------------


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("yes", "true", "1", "on"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("no", "false", "0", "off"):
        return False
    raise ValueError(f"Config key '{key}' must be a boolean, got {value!r}")


def _section(config_doc: dict[str, Any], name: str) -> dict[str, Any]:
    section = config_doc.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Config section '{name}' must be a mapping, got {section!r}")
    return section


def parse_server_config(config_doc: dict[str, Any], project_root: str | Path) -> ServerConfig:
    """
    Build a ServerConfig from an already-parsed config.yaml document.

    Raises:
        ValueError: on an unknown log level, a non-boolean sink switch, or a
            section that is not a mapping
    """
    project_root = Path(project_root)

    logging_section = _section(config_doc, "logging")
    level = LogLevel.parse(logging_section.get("level", LogLevel.INFO.value))
    console_output = _as_bool(logging_section.get("console", True), "logging.console")
    file_output = _as_bool(logging_section.get("file", True), "logging.file")
    session_id = logging_section.get("session_id")

    # Resolve relative log directory against project_root
    log_dir = str(logging_section.get("directory", "logs"))
    if not Path(log_dir).is_absolute():
        log_dir = str(project_root / log_dir)

    server_section = _section(config_doc, "server")
    server_name = str(server_section.get("name", DEFAULT_SERVER_NAME))

    return ServerConfig(
        log_level=level,
        console_output=console_output,
        file_output=file_output,
        log_dir=log_dir,
        session_id=str(session_id) if session_id else None,
        server_name=server_name,
    )


def load_server_config(
    project_root: str | Path,
    config_yaml_path: str | Path | None = None,
) -> ServerConfig:
    """
    Load ServerConfig from .workflow/config.yaml.

    Args:
        project_root: Root of the consuming repository.
        config_yaml_path: Override path for config.yaml (default: .workflow/config.yaml).

    Returns:
        ServerConfig with all settings resolved (defaults applied where missing).
    """
    project_root = Path(project_root)
    config_path = Path(config_yaml_path) if config_yaml_path else project_root / ".workflow" / "config.yaml"

    config_doc: Any = {}
    if config_path.exists():
        try:
            config_doc = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"{config_path} is not valid YAML: {exc}") from exc

    if not isinstance(config_doc, dict):
        raise ValueError(f"{config_path} must contain a mapping, got {type(config_doc).__name__}")

    return parse_server_config(config_doc, project_root)
