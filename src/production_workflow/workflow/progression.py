"""Step progression rules.

Pure functions over a :class:`Workflow` snapshot: legality of a transition,
the step-1 cascade correction and the per-step display status. Nothing here
performs I/O or retries; illegal transitions are reported, never coerced.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from production_workflow.workflow.errors import (
    OutOfSequenceError,
    StepNotFoundError,
    StepValidationError,
)
from production_workflow.workflow.models import (
    DisplayStatus,
    RecordedStatus,
    StepFormData,
    StepMode,
    Workflow,
)


class TransitionCheck(str, Enum):
    OK = "ok"
    OUT_OF_SEQUENCE = "out_of_sequence"
    NOT_FOUND = "not_found"


@dataclass(frozen=True, slots=True)
class CascadeCorrection:
    """An implicit change to one step caused by completing another."""

    step_number: int
    triggered_by: int
    previous_status: RecordedStatus | None
    new_status: RecordedStatus

    def to_json(self) -> dict[str, object]:
        return {
            "step_number": self.step_number,
            "triggered_by": self.triggered_by,
            "previous_status": self.previous_status.value if self.previous_status else None,
            "new_status": self.new_status.value,
        }


def validate_transition(workflow: Workflow, step_number: int, mode: StepMode) -> TransitionCheck:
    if mode == StepMode.COMPLETE:
        # A finished workflow has no next step to complete.
        if workflow.current_step >= workflow.total_steps:
            return TransitionCheck.NOT_FOUND
        if step_number == workflow.current_step + 1:
            return TransitionCheck.OK
        return TransitionCheck.OUT_OF_SEQUENCE
    if 1 <= step_number <= workflow.current_step:
        return TransitionCheck.OK
    return TransitionCheck.NOT_FOUND


def ensure_transition(workflow: Workflow, step_number: int, mode: StepMode) -> None:
    """Raise the error matching :func:`validate_transition`'s verdict."""

    check = validate_transition(workflow, step_number, mode)
    if check is TransitionCheck.OUT_OF_SEQUENCE:
        raise OutOfSequenceError(step_number, workflow.current_step + 1)
    if check is TransitionCheck.NOT_FOUND:
        raise StepNotFoundError(step_number, workflow.current_step)


def apply_cascade(
    workflow: Workflow, *, at: datetime
) -> tuple[Workflow, list[CascadeCorrection]]:
    """Force step 1's recorded status to completed once step 2 is completed.

    Only the step 1/2 pair is corrected. Later steps rely on
    :func:`derive_display_status` alone.
    """

    if workflow.current_step != 2:
        return workflow, []
    first = workflow.step(1)
    if first is None or first.form_data.recorded_status is RecordedStatus.COMPLETED:
        return workflow, []

    correction = CascadeCorrection(
        step_number=1,
        triggered_by=2,
        previous_status=first.form_data.recorded_status,
        new_status=RecordedStatus.COMPLETED,
    )
    corrected = first.model_copy(
        update={
            "form_data": first.form_data.model_copy(
                update={"recorded_status": RecordedStatus.COMPLETED}
            ),
            "last_edited_at": at,
        }
    )
    steps = [corrected if s.step_number == 1 else s for s in workflow.steps]
    return workflow.model_copy(update={"steps": steps}), [correction]


def derive_display_status(workflow: Workflow, step_number: int) -> DisplayStatus:
    if step_number < 1 or step_number > workflow.total_steps:
        return DisplayStatus.NOT_REACHED
    if step_number <= workflow.current_step:
        # Step 1 stays "going" until step 2 is done.
        if step_number == 1 and workflow.current_step == 1:
            return DisplayStatus.GOING
        return DisplayStatus.COMPLETED
    if step_number == workflow.current_step + 1:
        return DisplayStatus.ACTIVE
    return DisplayStatus.NOT_REACHED


def display_statuses(workflow: Workflow) -> dict[int, DisplayStatus]:
    return {
        n: derive_display_status(workflow, n) for n in range(1, workflow.total_steps + 1)
    }


def validate_form_data(step_number: int, form_data: StepFormData) -> None:
    errors: dict[str, str] = {}
    if not form_data.name.strip():
        errors["name"] = "Name is required"
    if form_data.date is None:
        errors["date"] = "Date is required"
    if form_data.recorded_status is None:
        errors["recorded_status"] = "Status is required"
    if not form_data.reason.strip():
        errors["reason"] = "Reason is required"
    if step_number > 1 and not form_data.languages:
        errors["languages"] = "Select at least one language"
    if errors:
        raise StepValidationError(step_number, errors)
