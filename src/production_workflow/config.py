"""Configuration for the production workflow service.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from production_workflow.workflow.models import DEFAULT_TOTAL_STEPS


class WorkflowSettings(BaseSettings):
    """Settings shared by the CLI and the REST server.

    Environment variables:
    - WORKFLOW_STATE_PATH    (optional)
    - WORKFLOW_TOTAL_STEPS   (optional)
    - LOG_LEVEL              (optional)
    - WORKFLOW_CORS_ORIGINS  (optional)
    - WORKFLOW_HOST / WORKFLOW_PORT (optional, `serve` only)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `WorkflowSettings(_env_file=path_to_env)`.
    """

    state_path: Path = Field(
        default=Path("workflow_state"),
        validation_alias="WORKFLOW_STATE_PATH",
        description="Directory where workflows and the activity log are persisted",
    )

    total_steps: int = Field(
        default=DEFAULT_TOTAL_STEPS,
        validation_alias="WORKFLOW_TOTAL_STEPS",
        description="Number of steps in a workflow; applies to newly created workflows",
        ge=1,
        le=50,
    )

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    cors_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        validation_alias="WORKFLOW_CORS_ORIGINS",
        description="Comma-separated list of allowed CORS origins.",
    )

    host: str = Field(default="127.0.0.1", validation_alias="WORKFLOW_HOST")
    port: int = Field(default=8000, validation_alias="WORKFLOW_PORT", ge=1, le=65535)

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    @property
    def workflows_state_file(self) -> Path:
        """Path where workflow documents are persisted."""

        return self.state_path / "workflows.json"

    @property
    def activity_log_file(self) -> Path:
        """Path of the append-only activity log."""

        return self.state_path / "activity.jsonl"

    def parsed_cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
