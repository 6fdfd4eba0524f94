"""Test configuration and fixtures."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from production_workflow.audit.activity_log import ActivityAuditLog
from production_workflow.workflow.editor import StepEditor
from production_workflow.workflow.events import WorkflowChangeNotifier
from production_workflow.workflow.models import Actor, RecordedStatus, StepFormData
from production_workflow.workflow.store import WorkflowStore


class FakeClock:
    """Deterministic clock that advances a fixed amount on every call."""

    def __init__(self, start: datetime, step: timedelta = timedelta(minutes=5)) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        self.now = self.now + self.step
        return self.now


def _make_form(step_number: int, **overrides: object) -> StepFormData:
    """A form that passes validation for ``step_number``."""

    data: dict[str, object] = {
        "name": f"Dr. Rao step {step_number}",
        "languages": [] if step_number == 1 else ["English"],
        "date": "2026-03-14",
        "recorded_status": RecordedStatus.COMPLETED,
        "reason": "on schedule",
    }
    data.update(overrides)
    return StepFormData.model_validate(data)


@pytest.fixture
def temp_state_dir(tmp_path: Path) -> Path:
    """Provide a temporary state directory."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def store(temp_state_dir: Path) -> WorkflowStore:
    return WorkflowStore(temp_state_dir / "workflows.json")


@pytest.fixture
def audit_log(temp_state_dir: Path) -> ActivityAuditLog:
    return ActivityAuditLog.at_path(temp_state_dir / "activity.jsonl")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 14, 9, 0, tzinfo=UTC))


@pytest.fixture
def notifier() -> WorkflowChangeNotifier:
    return WorkflowChangeNotifier()


@pytest.fixture
def editor(
    store: WorkflowStore,
    audit_log: ActivityAuditLog,
    notifier: WorkflowChangeNotifier,
    clock: FakeClock,
) -> StepEditor:
    return StepEditor(store, audit_log, notifier=notifier, clock=clock)


@pytest.fixture
def actor() -> Actor:
    return Actor(id="editor-1", display_name="Priya")


@pytest.fixture
def make_form():
    """Factory for valid step forms; keyword overrides replace single fields."""
    return _make_form
