"""Failure taxonomy for workflow operations.

Everything except :class:`AuditWriteFailure` is raised back to the caller, who
must handle it explicitly. Audit failures stay inside the audit log.
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for errors the caller of a workflow operation must handle."""


class StepValidationError(WorkflowError):
    """Submitted form data is missing or malformed required fields."""

    def __init__(self, step_number: int, errors: dict[str, str]) -> None:
        self.step_number = step_number
        self.errors = dict(errors)
        fields = ", ".join(sorted(self.errors))
        super().__init__(f"Step {step_number} form is invalid: {fields}")


class OutOfSequenceError(WorkflowError):
    """A step was completed out of order."""

    code = "out_of_sequence"

    def __init__(self, step_number: int, expected_step: int) -> None:
        self.step_number = step_number
        self.expected_step = expected_step
        super().__init__(
            f"Step {step_number} is out of order; complete step {expected_step} first"
        )


class NotFoundError(WorkflowError):
    """Unknown workflow, or a step that was never reached."""


class WorkflowNotFoundError(NotFoundError):
    def __init__(self, workflow_id: str) -> None:
        self.workflow_id = workflow_id
        super().__init__(f"Workflow not found: {workflow_id}")


class StepNotFoundError(NotFoundError):
    def __init__(self, step_number: int, current_step: int) -> None:
        self.step_number = step_number
        self.current_step = current_step
        super().__init__(
            f"Step {step_number} has not been completed yet (current step is {current_step})"
        )


class ConcurrencyConflictError(WorkflowError):
    """Another writer committed to the workflow first."""

    code = "conflict"

    def __init__(self, workflow_id: str, expected_version: int, actual_version: int) -> None:
        self.workflow_id = workflow_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            "Someone else just updated this workflow "
            f"(version {actual_version}, expected {expected_version}); re-fetch and retry"
        )


class AuditWriteFailure(Exception):
    """An activity event could not be persisted. Never propagated to callers."""


class WorkflowStateError(WorkflowError):
    """The workflow state file cannot be read; it is left untouched for repair."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Workflow state file {path} is unreadable ({reason}); fix or restore it")
