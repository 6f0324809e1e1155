#!/usr/bin/env python3
# Ticket: 0001_phase_workflow_server
# Design: DESIGN.md
"""
Workflow Engine Audit Logger

Every state change and every protocol exchange is recorded through a single
AuditLogger. Each emitted entry gets the next value of a per-session sequence
counter and goes to up to two independent sinks:

- console: one colour-coded line per entry. warn/error go to stderr,
  debug/info to stdout.
- durable: one JSON object per line (JSON Lines) appended to
  <log_dir>/mcp-<session_id>-<created_at>.jsonl and flushed per entry.

Entries below the configured level are dropped before a sequence number is
assigned, so the durable log always has consecutive sequence numbers
starting at 0.

The audit trail is append-only and never modified after writing. If the log
file cannot be opened or written, durable output is switched off for the rest
of the session and the caller is not told; the console sink and the sequence
counter keep working. A failing console stream is likewise switched off
without affecting the durable sink, which is always written first.

An entry whose metadata json cannot encode is not a sink failure: the
offending fields are recorded as repr() strings and the entry keeps its
sequence number.
"""

import json
import os
import random
import string
import sys
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Any, TextIO

from .models import (
    LogEntry,
    LogLevel,
    ProtocolMessage,
    TimingInfo,
    WorkflowLog,
    format_iso,
    parse_timestamp,
    utc_now,
)


# ---------------------------------------------------------------------------
# Console formatting helpers
# ---------------------------------------------------------------------------

ANSI_COLORS: dict[str, str] = {
    "reset": "\x1b[0m",
    "bright": "\x1b[1m",
    "dim": "\x1b[2m",
    "red": "\x1b[31m",
    "green": "\x1b[32m",
    "yellow": "\x1b[33m",
    "blue": "\x1b[34m",
    "magenta": "\x1b[35m",
    "cyan": "\x1b[36m",
    "white": "\x1b[37m",
}

_LEVEL_COLORS = {
    LogLevel.DEBUG: ANSI_COLORS["cyan"],
    LogLevel.INFO: ANSI_COLORS["green"],
    LogLevel.WARN: ANSI_COLORS["yellow"],
    LogLevel.ERROR: ANSI_COLORS["red"],
}

CONSOLE_FIELD_MAX_LENGTH = 120


def level_priority(level: LogLevel | str) -> int:
    """Numeric priority of a level: debug=0 ... error=3."""
    return LogLevel.parse(level).priority


def level_color(level: LogLevel | str) -> str:
    """ANSI colour reserved for a level."""
    return _LEVEL_COLORS[LogLevel.parse(level)]


def format_timestamp(timestamp: str) -> str:
    """Render an ISO 8601 timestamp as local HH:MM:SS.mmm."""
    local = parse_timestamp(timestamp).astimezone()
    return local.strftime("%H:%M:%S.") + f"{local.microsecond // 1000:03d}"


def truncate_string(value: str, max_length: int = 80) -> str:
    """Shorten value to max_length characters, ending in '...' if cut."""
    if len(value) <= max_length:
        return value
    return value[: max_length - 3] + "..."


def format_object(obj: Any, indent: int | None = 2) -> str:
    """JSON-render obj; fall back to str() for anything json cannot handle."""
    try:
        return json.dumps(obj, indent=indent, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(obj)


def _format_error(error: Any) -> str:
    if isinstance(error, BaseException):
        return str(error) or type(error).__name__
    if isinstance(error, str):
        return error
    return format_object(error, indent=None)


def format_console_line(entry: LogEntry, color: bool = True) -> str:
    """
    Render an entry as a single human-readable line.

    Example:
        [12:00:01.250] INFO Workflow phase: implementation | workflow: implementation (from issue_start)
    """
    level_text = entry.level.value.upper()
    if color:
        level_text = f"{_LEVEL_COLORS[entry.level]}{level_text}{ANSI_COLORS['reset']}"

    parts = [f"[{format_timestamp(entry.timestamp)}] {level_text}"]
    if entry.message:
        parts[0] += f" {entry.message}"

    if entry.protocol is not None:
        method = f" {entry.protocol.method}" if entry.protocol.method else ""
        parts.append(f"protocol: {entry.protocol.type}{method}")
    if entry.workflow is not None:
        text = f"workflow: {entry.workflow.phase}"
        if entry.workflow.previous_phase:
            text += f" (from {entry.workflow.previous_phase})"
        parts.append(text)
    if entry.timing is not None and entry.timing.duration is not None:
        parts.append(f"took {entry.timing.duration:.1f}ms")
    if entry.error is not None:
        parts.append(
            "error: " + truncate_string(_format_error(entry.error), CONSOLE_FIELD_MAX_LENGTH)
        )

    # Keep it on one line even if a message carries newlines.
    return " | ".join(parts).replace("\n", " ")


def generate_session_id() -> str:
    """Return '<epoch-ms>-<7 base36 chars>'."""
    alphabet = string.digits + string.ascii_lowercase
    suffix = "".join(random.choices(alphabet, k=7))
    return f"{int(time.time() * 1000)}-{suffix}"


def log_file_name(session_id: str, created_at: datetime) -> str:
    """Durable log file name; embeds session id and creation instant."""
    stamp = format_iso(created_at).replace(":", "-").replace(".", "-")
    return f"mcp-{session_id}-{stamp}.jsonl"


def _json_safe(value: Any) -> Any:
    try:
        json.dumps(value, default=str)
    except (TypeError, ValueError):
        return repr(value)
    return value


def encode_entry(entry: LogEntry) -> str:
    """
    Serialize an entry as one JSON Lines record (without the newline).

    A top-level field that json cannot encode, such as circular metadata or
    a dict with non-string keys, is recorded as its repr() so the rest of the
    entry still lands in the log.
    """
    record = entry.to_dict()
    try:
        return json.dumps(record, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        record = {key: _json_safe(value) for key, value in record.items()}
        return json.dumps(record, default=str, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------


class AuditLogger:
    """
    Sequenced, leveled event recorder with a console and a JSON Lines sink.

    Args:
        level: Minimum level to emit. Lower levels are dropped entirely.
        console_output: Write a coloured line per entry to stdout/stderr.
        file_output: Append each entry to a JSON Lines file under log_dir.
        log_dir: Directory for the durable log (created if missing).
        session_id: Stable id for this logger; generated when omitted.
        stdout, stderr: Console streams. Default to sys.stdout/sys.stderr
            looked up at write time.
    """

    def __init__(
        self,
        level: LogLevel | str = LogLevel.INFO,
        console_output: bool = True,
        file_output: bool = True,
        log_dir: str | Path = "./logs",
        session_id: str | None = None,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ):
        self._session_id = session_id or generate_session_id()
        self._level = LogLevel.parse(level)
        self._console_output = console_output
        self._file_output = file_output
        self._stdout = stdout
        self._stderr = stderr
        self._sequence_number = 0
        self._lock = threading.Lock()
        self._stream: TextIO | None = None
        self._log_file_path: Path | None = None

        if self._file_output:
            self._open_log_file(Path(log_dir))

    # -----------------------------------------------------------------------
    # Properties
    # -----------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def level(self) -> LogLevel:
        return self._level

    @property
    def sequence_number(self) -> int:
        """The sequence number the next emitted entry will receive."""
        return self._sequence_number

    @property
    def log_file_path(self) -> Path | None:
        return self._log_file_path

    @property
    def file_output_enabled(self) -> bool:
        return self._file_output and self._stream is not None

    # -----------------------------------------------------------------------
    # Durable sink
    # -----------------------------------------------------------------------

    def _open_log_file(self, log_dir: Path) -> None:
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            path = log_dir / log_file_name(self._session_id, utc_now())
            self._stream = open(path, "a", encoding="utf-8")
            self._log_file_path = path
        except OSError as exc:
            self._disable_file_output(f"Failed to initialize file logging: {exc}")

    def _disable_file_output(self, reason: str) -> None:
        self._file_output = False
        stream, self._stream = self._stream, None
        if stream is not None:
            try:
                stream.close()
            except OSError:
                pass
        print(reason, file=self._stderr or sys.stderr)

    def _write_durable(self, line: str) -> None:
        if not self._file_output or self._stream is None:
            return
        try:
            self._stream.write(line + "\n")
            self._stream.flush()
        except (OSError, ValueError) as exc:
            # ValueError here means the stream was closed underneath us
            self._disable_file_output(f"Log stream error: {exc}")

    # -----------------------------------------------------------------------
    # Console sink
    # -----------------------------------------------------------------------

    def _write_console(self, entry: LogEntry) -> None:
        if not self._console_output:
            return
        line = format_console_line(entry)
        if entry.level in (LogLevel.WARN, LogLevel.ERROR):
            stream = self._stderr or sys.stderr
        else:
            stream = self._stdout or sys.stdout
        try:
            stream.write(line + "\n")
            stream.flush()
        except (OSError, ValueError):
            # Broken or closed console: stop writing to it. The durable
            # record for this entry is already written.
            self._console_output = False

    # -----------------------------------------------------------------------
    # Emission
    # -----------------------------------------------------------------------

    def is_enabled_for(self, level: LogLevel | str) -> bool:
        return LogLevel.parse(level).priority >= self._level.priority

    def log(
        self,
        level: LogLevel | str,
        message: str | None = None,
        *,
        protocol: ProtocolMessage | None = None,
        workflow: WorkflowLog | None = None,
        timing: TimingInfo | None = None,
        metadata: dict[str, Any] | None = None,
        error: Any = None,
    ) -> LogEntry | None:
        """
        Emit one entry.

        Returns the entry that was written, or None if level is below the
        configured minimum (in which case nothing happens at all).
        """
        level = LogLevel.parse(level)
        if not self.is_enabled_for(level):
            return None

        with self._lock:
            entry = LogEntry(
                timestamp=format_iso(utc_now()),
                session_id=self._session_id,
                sequence_number=self._sequence_number,
                level=level,
                message=message,
                protocol=protocol,
                workflow=workflow,
                timing=timing,
                metadata=dict(metadata) if metadata is not None else None,
                error=error,
            )
            line = encode_entry(entry)
            self._sequence_number += 1
            self._write_durable(line)
            self._write_console(entry)
        return entry

    def debug(self, message: str, metadata: dict[str, Any] | None = None, **fields: Any) -> LogEntry | None:
        return self.log(LogLevel.DEBUG, message, metadata=metadata, **fields)

    def info(self, message: str, metadata: dict[str, Any] | None = None, **fields: Any) -> LogEntry | None:
        return self.log(LogLevel.INFO, message, metadata=metadata, **fields)

    def warn(self, message: str, metadata: dict[str, Any] | None = None, **fields: Any) -> LogEntry | None:
        return self.log(LogLevel.WARN, message, metadata=metadata, **fields)

    def error(
        self,
        message: str,
        error: Any = None,
        metadata: dict[str, Any] | None = None,
        **fields: Any,
    ) -> LogEntry | None:
        return self.log(LogLevel.ERROR, message, error=error, metadata=metadata, **fields)

    def log_protocol(
        self,
        protocol: ProtocolMessage,
        timing: TimingInfo | None = None,
    ) -> LogEntry | None:
        """Record one protocol exchange at info level."""
        message = f"{protocol.type}: {protocol.method or 'unknown'}"
        return self.log(LogLevel.INFO, message, protocol=protocol, timing=timing)

    def log_workflow(
        self,
        workflow: WorkflowLog,
        metadata: dict[str, Any] | None = None,
    ) -> LogEntry | None:
        """Record a workflow transition at info level."""
        message = f"Workflow phase: {workflow.phase}"
        return self.log(LogLevel.INFO, message, workflow=workflow, metadata=metadata)

    # -----------------------------------------------------------------------
    # Shutdown
    # -----------------------------------------------------------------------

    def close(self) -> None:
        """
        Flush and fsync the durable log, then close it.

        Safe to call more than once and when no file is open.
        """
        with self._lock:
            stream, self._stream = self._stream, None
            if stream is None:
                return
            try:
                stream.flush()
                os.fsync(stream.fileno())
            except OSError as exc:
                print(f"Failed to flush log file: {exc}", file=self._stderr or sys.stderr)
            finally:
                stream.close()

    def __enter__(self) -> "AuditLogger":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
