"""Workflow aggregate and step records."""

from __future__ import annotations

from datetime import UTC, datetime
from datetime import date as calendar_date
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

STEP_NAMES: tuple[str, ...] = (
    "Going To Shoot",
    "Shoot Completed",
    "Video/Shorts Editing",
    "Thumbnails Editing",
    "Thumbnail & Spell Check",
    "SEO Keywords",
    "Upload Videos",
)

DEFAULT_TOTAL_STEPS = len(STEP_NAMES)


def step_name(step_number: int) -> str:
    if 1 <= step_number <= len(STEP_NAMES):
        return STEP_NAMES[step_number - 1]
    return f"Step {step_number}"


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so that all timestamps stay comparable."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class RecordedStatus(str, Enum):
    GOING = "going"
    COMPLETED = "completed"
    INCOMPLETE = "incomplete"


class WorkflowStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class DisplayStatus(str, Enum):
    COMPLETED = "completed"
    ACTIVE = "active"
    GOING = "going"
    NOT_REACHED = "not_reached"


class StepMode(str, Enum):
    COMPLETE = "complete"
    EDIT = "edit"


class Actor(BaseModel):
    """Who performed an action. Identity is opaque to this service."""

    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str


class StepFormData(BaseModel):
    name: str = ""
    languages: list[str] = Field(default_factory=list)
    date: calendar_date | None = None
    recorded_status: RecordedStatus | None = None
    reason: str = ""

    @field_validator("date", "recorded_status", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("languages", mode="before")
    @classmethod
    def _coerce_languages(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if isinstance(value, (list, tuple, set, frozenset)):
            # Set semantics, keeping first-seen order for stable output.
            seen: dict[str, None] = {}
            for item in value:
                if isinstance(item, str) and item.strip():
                    seen.setdefault(item.strip(), None)
            return list(seen)
        return value


class StepRecord(BaseModel):
    step_number: int = Field(ge=1)
    step_name: str
    form_data: StepFormData
    completed_at: datetime
    last_edited_at: datetime | None = None


class Workflow(BaseModel):
    """Progress of one assignee through the fixed step sequence of one schedule."""

    id: str
    schedule_id: str
    assignee_id: str
    department_name: str

    current_step: int = Field(default=0, ge=0)
    total_steps: int = Field(default=DEFAULT_TOTAL_STEPS, ge=1)
    steps: list[StepRecord] = Field(default_factory=list)

    # Bumped on every committed mutation; used for optimistic concurrency.
    version: int = 0

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status(self) -> WorkflowStatus:
        if self.current_step >= self.total_steps:
            return WorkflowStatus.COMPLETED
        if self.current_step == 0:
            return WorkflowStatus.NOT_STARTED
        return WorkflowStatus.IN_PROGRESS

    @property
    def key(self) -> tuple[str, str]:
        return (self.schedule_id, self.assignee_id)

    def step(self, step_number: int) -> StepRecord | None:
        for record in self.steps:
            if record.step_number == step_number:
                return record
        return None
