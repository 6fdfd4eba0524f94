"""Workflow operations: start, complete, edit.

The editor is the only caller of :meth:`WorkflowStore.commit_step`. Each
successful mutation is followed by exactly one step activity event (plus a
``schedule_complete`` event when the final step is completed) and a change
notification. Neither of those can fail the mutation.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from production_workflow.audit.activity_log import ActivityAuditLog, ActivityEvent
from production_workflow.workflow.errors import StepNotFoundError
from production_workflow.workflow.events import WorkflowChange, WorkflowChangeNotifier
from production_workflow.workflow.models import (
    Actor,
    StepFormData,
    StepMode,
    StepRecord,
    Workflow,
    utc_now,
)
from production_workflow.workflow.progression import ensure_transition, validate_form_data
from production_workflow.workflow.store import CommitResult, WorkflowStore

logger = logging.getLogger(__name__)

SUBJECT_WORKFLOW = "workflow"
SUBJECT_SCHEDULE = "schedule"

ACTION_WORKFLOW_START = "workflow_start"
ACTION_WORKFLOW_RESUME = "workflow_resume"
ACTION_STEP_COMPLETE = "workflow_step_complete"
ACTION_STEP_EDIT = "workflow_step_edit"
ACTION_SCHEDULE_COMPLETE = "schedule_complete"


def _elapsed_ms(start: datetime, end: datetime) -> int:
    return max(0, int((end - start).total_seconds() * 1000))


def _form_values(form_data: StepFormData | None) -> dict[str, Any]:
    if form_data is None:
        return {}
    return form_data.model_dump(mode="json")


class StepEditor:
    """Orchestrates workflow mutations on behalf of an explicit actor."""

    def __init__(
        self,
        store: WorkflowStore,
        audit_log: ActivityAuditLog,
        *,
        notifier: WorkflowChangeNotifier | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.audit_log = audit_log
        self.notifier = notifier or WorkflowChangeNotifier()
        self._clock = clock

    def start_workflow(
        self,
        *,
        schedule_id: str,
        assignee_id: str,
        department_name: str,
        actor: Actor,
    ) -> tuple[Workflow, bool]:
        """Create the workflow for (schedule, assignee) or resume the existing one."""

        now = self._clock()
        workflow, created = self.store.get_or_create(
            schedule_id, assignee_id, department_name, at=now
        )
        self._record(
            actor=actor,
            subject_type=SUBJECT_WORKFLOW,
            subject_id=workflow.id,
            action=ACTION_WORKFLOW_START if created else ACTION_WORKFLOW_RESUME,
            timestamp=now,
            new_values={
                "current_step": workflow.current_step,
                "status": workflow.status.value,
            },
            metadata=self._workflow_metadata(workflow),
        )
        if created:
            self.notifier.publish(WorkflowChange(type=ACTION_WORKFLOW_START, workflow=workflow))
        return workflow, created

    def submit_step(
        self, workflow_id: str, step_number: int, form_data: StepFormData, *, actor: Actor
    ) -> Workflow:
        """Edit an already-completed step, or complete the next one."""

        workflow = self.store.get(workflow_id)
        if 1 <= step_number <= workflow.current_step:
            return self.edit_step(workflow_id, step_number, form_data, actor=actor)
        return self.complete_step(workflow_id, step_number, form_data, actor=actor)

    def complete_step(
        self, workflow_id: str, step_number: int, form_data: StepFormData, *, actor: Actor
    ) -> Workflow:
        snapshot = self.store.get(workflow_id)
        ensure_transition(snapshot, step_number, StepMode.COMPLETE)
        validate_form_data(step_number, form_data)

        now = self._clock()
        result = self.store.commit_step(
            workflow_id,
            step_number,
            form_data,
            StepMode.COMPLETE,
            expected_version=snapshot.version,
            at=now,
        )
        workflow = result.workflow

        previous_mark = self._last_completion(snapshot) or snapshot.created_at
        metadata = self._workflow_metadata(workflow, step_number=step_number)
        if result.corrections:
            metadata["cascade"] = [c.to_json() for c in result.corrections]

        self._record(
            actor=actor,
            subject_type=SUBJECT_WORKFLOW,
            subject_id=workflow.id,
            action=ACTION_STEP_COMPLETE,
            timestamp=now,
            duration_ms=_elapsed_ms(previous_mark, now),
            previous_values={"current_step": snapshot.current_step},
            new_values={"current_step": workflow.current_step, **_form_values(form_data)},
            metadata=metadata,
        )

        if workflow.current_step >= workflow.total_steps:
            self._record(
                actor=actor,
                subject_type=SUBJECT_SCHEDULE,
                subject_id=workflow.schedule_id,
                action=ACTION_SCHEDULE_COMPLETE,
                timestamp=now,
                duration_ms=_elapsed_ms(workflow.created_at, now),
                new_values={"status": workflow.status.value},
                metadata=self._workflow_metadata(workflow),
            )
            logger.info(
                "Workflow completed",
                extra={"workflow_id": workflow.id, "schedule_id": workflow.schedule_id},
            )

        self._publish(result)
        return workflow

    def edit_step(
        self, workflow_id: str, step_number: int, form_data: StepFormData, *, actor: Actor
    ) -> Workflow:
        snapshot = self.store.get(workflow_id)
        ensure_transition(snapshot, step_number, StepMode.EDIT)
        validate_form_data(step_number, form_data)

        if snapshot.step(step_number) is None:
            logger.warning(
                "Editing a reached step with no stored record",
                extra={"workflow_id": workflow_id, "step_number": step_number},
            )

        now = self._clock()
        result = self.store.commit_step(
            workflow_id,
            step_number,
            form_data,
            StepMode.EDIT,
            expected_version=snapshot.version,
            at=now,
        )
        workflow = result.workflow

        self._record(
            actor=actor,
            subject_type=SUBJECT_WORKFLOW,
            subject_id=workflow.id,
            action=ACTION_STEP_EDIT,
            timestamp=now,
            previous_values=_form_values(result.previous.form_data if result.previous else None),
            new_values=_form_values(form_data),
            metadata=self._workflow_metadata(workflow, step_number=step_number),
        )
        self._publish(result)
        return workflow

    def step_record(self, workflow_id: str, step_number: int) -> StepRecord:
        workflow = self.store.get(workflow_id)
        record = workflow.step(step_number)
        if record is None:
            raise StepNotFoundError(step_number, workflow.current_step)
        return record

    @staticmethod
    def _last_completion(workflow: Workflow) -> datetime | None:
        times = [s.completed_at for s in workflow.steps]
        return max(times) if times else None

    @staticmethod
    def _workflow_metadata(workflow: Workflow, *, step_number: int | None = None) -> dict[str, Any]:
        metadata: dict[str, Any] = {
            "workflow_id": workflow.id,
            "schedule_id": workflow.schedule_id,
            "assignee_id": workflow.assignee_id,
            "department_name": workflow.department_name,
            "current_step": workflow.current_step,
            "total_steps": workflow.total_steps,
            "workflow_status": workflow.status.value,
        }
        if step_number is not None:
            record = workflow.step(step_number)
            metadata["step_number"] = step_number
            metadata["step_name"] = record.step_name if record else None
        return metadata

    def _record(self, *, actor: Actor, **fields: Any) -> None:
        try:
            event = ActivityEvent(actor=actor, **fields)
        except ValueError:
            logger.exception("Could not build activity event", extra={"action": fields.get("action")})
            return
        self.audit_log.record_event(event)

    def _publish(self, result: CommitResult) -> None:
        change_type = ACTION_STEP_COMPLETE if result.mode == StepMode.COMPLETE else ACTION_STEP_EDIT
        self.notifier.publish(
            WorkflowChange(type=change_type, workflow=result.workflow, step_number=result.step_number)
        )
