"""Pydantic models for the REST server.

The wire format is camelCase; Python attributes stay snake_case.
"""

from __future__ import annotations

from datetime import date as calendar_date
from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from production_workflow.audit.activity_log import ActivityEvent, ActivitySummary
from production_workflow.workflow.models import (
    Actor,
    DisplayStatus,
    RecordedStatus,
    StepFormData,
    StepRecord,
    Workflow,
    WorkflowStatus,
    step_name,
)
from production_workflow.workflow.progression import derive_display_status


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApiActor(ApiModel):
    id: str
    display_name: str = ""

    def to_actor(self) -> Actor:
        return Actor(id=self.id, display_name=self.display_name or self.id)


class StartWorkflowRequest(ApiModel):
    schedule_id: str = Field(min_length=1)
    assignee_id: str = Field(min_length=1)
    department_name: str = Field(min_length=1)
    actor: ApiActor | None = None


class WorkflowSummary(ApiModel):
    workflow_id: str
    schedule_id: str
    assignee_id: str
    department_name: str
    current_step: int
    total_steps: int
    status: WorkflowStatus
    version: int
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None

    @classmethod
    def from_workflow(cls, workflow: Workflow) -> WorkflowSummary:
        return cls(
            workflow_id=workflow.id,
            schedule_id=workflow.schedule_id,
            assignee_id=workflow.assignee_id,
            department_name=workflow.department_name,
            current_step=workflow.current_step,
            total_steps=workflow.total_steps,
            status=workflow.status,
            version=workflow.version,
            created_at=workflow.created_at,
            updated_at=workflow.updated_at,
            completed_at=workflow.completed_at,
        )


class StartWorkflowResponse(WorkflowSummary):
    created: bool


class ApiStepFormData(ApiModel):
    name: str = ""
    languages: list[str] | str = Field(default_factory=list)
    date: calendar_date | None = None
    # Older clients send the recorded status as plain "status".
    recorded_status: RecordedStatus | None = Field(
        default=None,
        validation_alias=AliasChoices("recordedStatus", "recorded_status", "status"),
    )
    reason: str = ""

    def to_form_data(self) -> StepFormData:
        return StepFormData.model_validate(self.model_dump())

    @classmethod
    def from_form_data(cls, form_data: StepFormData) -> ApiStepFormData:
        return cls.model_validate(form_data.model_dump())


class ApiStep(ApiModel):
    step_number: int
    step_name: str
    display_status: DisplayStatus
    form_data: ApiStepFormData | None = None
    completed_at: datetime | None = None
    last_edited_at: datetime | None = None

    @classmethod
    def build(cls, workflow: Workflow, step_number: int, record: StepRecord | None) -> ApiStep:
        return cls(
            step_number=step_number,
            step_name=record.step_name if record else step_name(step_number),
            display_status=derive_display_status(workflow, step_number),
            form_data=ApiStepFormData.from_form_data(record.form_data) if record else None,
            completed_at=record.completed_at if record else None,
            last_edited_at=record.last_edited_at if record else None,
        )


class WorkflowDetail(WorkflowSummary):
    steps: list[ApiStep] = Field(default_factory=list)

    @classmethod
    def from_workflow(cls, workflow: Workflow) -> WorkflowDetail:
        summary = WorkflowSummary.from_workflow(workflow)
        steps = [
            ApiStep.build(workflow, n, workflow.step(n)) for n in range(1, workflow.total_steps + 1)
        ]
        return cls(**summary.model_dump(), steps=steps)


class SubmitStepRequest(ApiModel):
    form_data: ApiStepFormData
    actor: ApiActor | None = None


class SubmitStepResponse(WorkflowSummary):
    mode: Literal["complete", "edit"]
    step_number: int


class RecordActivityRequest(ApiModel):
    # Required fields are checked by the route so that a missing one yields 400.
    actor_id: str | None = None
    display_name: str | None = None
    subject_type: str = "schedule"
    subject_id: str | None = None
    action: str | None = None
    timestamp: datetime | None = None
    duration_ms: int | None = Field(default=None, ge=0)
    previous_values: dict[str, Any] = Field(default_factory=dict)
    new_values: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def missing_fields(self) -> list[str]:
        required = {
            "actorId": self.actor_id,
            "subjectId": self.subject_id,
            "action": self.action,
        }
        return [name for name, value in required.items() if not (value or "").strip()]


class ApiActivityEvent(ApiModel):
    id: str
    actor: ApiActor
    subject_type: str
    subject_id: str
    action: str
    timestamp: datetime
    duration_ms: int | None = None
    previous_values: dict[str, Any] = Field(default_factory=dict)
    new_values: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_event(cls, event: ActivityEvent) -> ApiActivityEvent:
        data = event.model_dump()
        data["actor"] = ApiActor(id=event.actor.id, display_name=event.actor.display_name)
        return cls(**data)


class ApiActionSummary(ApiModel):
    action: str
    count: int
    total_duration_ms: int
    unique_actor_count: int
    last_activity: datetime


class ApiActivitySummary(ApiModel):
    total_events: int
    total_duration_ms: int
    unique_actor_count: int
    first_activity: datetime | None = None
    last_activity: datetime | None = None
    actions: list[ApiActionSummary] = Field(default_factory=list)

    @classmethod
    def from_summary(cls, summary: ActivitySummary) -> ApiActivitySummary:
        return cls.model_validate(summary.model_dump())
