"""Shared test helpers for task_runner tests."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

from task_runner.engine.models import Phase, PhaseResult, ResultStatus


T0 = datetime(2026, 1, 5, 9, 0, 0, tzinfo=timezone.utc)


class StepClock:
    """Returns T0, T0+1s, T0+2s, ... on successive calls."""

    def __init__(self, start: datetime = T0, step: timedelta = timedelta(seconds=1)):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + self.step
        return value


def read_jsonl(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line]


def make_result(
    phase: Phase,
    working_files: tuple[str, ...] = (),
    next_phase: Phase | None = None,
    status: ResultStatus = ResultStatus.COMPLETED,
) -> PhaseResult:
    return PhaseResult(
        phase_name=phase,
        status=status,
        completed_at="2026-01-05T09:30:00.000Z",
        working_files=working_files,
        completed_tasks=("task one", "task two"),
        next_phase=next_phase,
    )
