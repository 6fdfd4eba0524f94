"""Unit tests for configuration."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from production_workflow.config import WorkflowSettings


def test_settings_defaults(monkeypatch) -> None:
    """Test default values without any environment."""
    for name in ("WORKFLOW_STATE_PATH", "WORKFLOW_TOTAL_STEPS", "LOG_LEVEL", "WORKFLOW_CORS_ORIGINS"):
        monkeypatch.delenv(name, raising=False)

    settings = WorkflowSettings(_env_file=None)

    assert settings.state_path == Path("workflow_state")
    assert settings.total_steps == 7
    assert settings.log_level == "INFO"
    assert settings.workflows_state_file == Path("workflow_state") / "workflows.json"
    assert settings.activity_log_file == Path("workflow_state") / "activity.jsonl"
    assert settings.parsed_cors_origins() == ["http://localhost:3000", "http://127.0.0.1:3000"]


def test_settings_from_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("WORKFLOW_STATE_PATH", str(tmp_path))
    monkeypatch.setenv("WORKFLOW_TOTAL_STEPS", "5")
    monkeypatch.setenv("WORKFLOW_CORS_ORIGINS", " https://a.example , ,https://b.example")

    settings = WorkflowSettings(_env_file=None)

    assert settings.state_path == tmp_path
    assert settings.total_steps == 5
    assert settings.parsed_cors_origins() == ["https://a.example", "https://b.example"]


def test_settings_from_env_file(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("LOG_LEVEL=DEBUG\nWORKFLOW_PORT=9001\nUNRELATED=1\n", encoding="utf-8")

    settings = WorkflowSettings(_env_file=env_file)

    assert settings.log_level == "DEBUG"
    assert settings.port == 9001


def test_settings_reject_invalid_step_count(monkeypatch) -> None:
    monkeypatch.setenv("WORKFLOW_TOTAL_STEPS", "0")

    with pytest.raises(ValidationError):
        WorkflowSettings(_env_file=None)
