"""JSON-file backed store for workflow documents.

The file holds one document per (schedule_id, assignee_id) key, each with its
embedded ordered step array. A store-level lock serializes every
read-modify-write, and each committed mutation bumps the workflow's version so
that a writer holding a stale snapshot is rejected instead of merged.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from production_workflow.workflow.errors import (
    ConcurrencyConflictError,
    WorkflowNotFoundError,
    WorkflowStateError,
)
from production_workflow.workflow.models import (
    DEFAULT_TOTAL_STEPS,
    StepFormData,
    StepMode,
    StepRecord,
    Workflow,
    step_name,
    utc_now,
)
from production_workflow.workflow.progression import (
    CascadeCorrection,
    apply_cascade,
    ensure_transition,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CommitResult:
    workflow: Workflow
    mode: StepMode
    step_number: int
    # The step as it was before an edit; None for completions.
    previous: StepRecord | None = None
    corrections: list[CascadeCorrection] = field(default_factory=list)


class WorkflowStore:
    """Durable lookup, creation and mutation of workflows."""

    def __init__(self, path: Path, *, total_steps: int = DEFAULT_TOTAL_STEPS) -> None:
        self._path = path
        self._total_steps = total_steps
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _load_unlocked(self) -> list[Workflow]:
        if not self._path.exists():
            return []
        # Refuse to continue on a damaged file: the next save would overwrite it.
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error("Workflow state file is not valid JSON", extra={"path": str(self._path)})
            raise WorkflowStateError(str(self._path), "invalid JSON") from e
        if not isinstance(raw, list):
            logger.error(
                "Workflow state file has unexpected shape", extra={"path": str(self._path)}
            )
            raise WorkflowStateError(str(self._path), "expected a list of workflows")
        try:
            return [Workflow.model_validate(item) for item in raw]
        except ValidationError as e:
            logger.error(
                "Workflow state file holds an invalid workflow", extra={"path": str(self._path)}
            )
            raise WorkflowStateError(str(self._path), "invalid workflow document") from e

    def _save_unlocked(self, workflows: list[Workflow]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = [w.model_dump(mode="json") for w in workflows]
        text = json.dumps(payload, indent=2, ensure_ascii=False) + "\n"

        # Write-then-rename so readers never observe a half-written file.
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=self._path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp, self._path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def list(
        self, *, schedule_id: str | None = None, assignee_id: str | None = None
    ) -> list[Workflow]:
        with self._lock:
            workflows = self._load_unlocked()
        if schedule_id is not None:
            workflows = [w for w in workflows if w.schedule_id == schedule_id]
        if assignee_id is not None:
            workflows = [w for w in workflows if w.assignee_id == assignee_id]
        workflows.sort(key=lambda w: w.updated_at, reverse=True)
        return workflows

    def get(self, workflow_id: str) -> Workflow:
        with self._lock:
            for workflow in self._load_unlocked():
                if workflow.id == workflow_id:
                    return workflow
        raise WorkflowNotFoundError(workflow_id)

    def find(self, schedule_id: str, assignee_id: str) -> Workflow | None:
        with self._lock:
            for workflow in self._load_unlocked():
                if workflow.key == (schedule_id, assignee_id):
                    return workflow
        return None

    def get_or_create(
        self,
        schedule_id: str,
        assignee_id: str,
        department_name: str,
        *,
        at: datetime | None = None,
    ) -> tuple[Workflow, bool]:
        """Return the workflow for the key, creating it on first use.

        Returns:
            Tuple of (workflow, created).
        """

        with self._lock:
            workflows = self._load_unlocked()
            for existing in workflows:
                if existing.key == (schedule_id, assignee_id):
                    logger.debug(
                        "Resuming existing workflow",
                        extra={"workflow_id": existing.id, "schedule_id": schedule_id},
                    )
                    return existing, False

            now = at or utc_now()
            created = Workflow(
                id=uuid.uuid4().hex,
                schedule_id=schedule_id,
                assignee_id=assignee_id,
                department_name=department_name,
                current_step=0,
                total_steps=self._total_steps,
                created_at=now,
                updated_at=now,
            )
            workflows.append(created)
            self._save_unlocked(workflows)

        logger.info(
            "Workflow created",
            extra={
                "workflow_id": created.id,
                "schedule_id": schedule_id,
                "assignee_id": assignee_id,
            },
        )
        return created, True

    def commit_step(
        self,
        workflow_id: str,
        step_number: int,
        form_data: StepFormData,
        mode: StepMode,
        *,
        expected_version: int | None = None,
        at: datetime | None = None,
    ) -> CommitResult:
        """Apply one complete or edit mutation atomically.

        Raises:
            WorkflowNotFoundError: unknown workflow id.
            ConcurrencyConflictError: ``expected_version`` is stale.
            OutOfSequenceError / StepNotFoundError: the transition is illegal.
        """

        now = at or utc_now()
        with self._lock:
            workflows = self._load_unlocked()
            for idx, current in enumerate(workflows):
                if current.id == workflow_id:
                    break
            else:
                raise WorkflowNotFoundError(workflow_id)

            if expected_version is not None and current.version != expected_version:
                raise ConcurrencyConflictError(workflow_id, expected_version, current.version)

            ensure_transition(current, step_number, mode)

            if mode == StepMode.COMPLETE:
                result = self._complete(current, step_number, form_data, now)
            else:
                result = self._edit(current, step_number, form_data, now)

            workflows[idx] = result.workflow
            self._save_unlocked(workflows)

        logger.info(
            "Workflow step committed",
            extra={
                "workflow_id": workflow_id,
                "step_number": step_number,
                "mode": StepMode(mode).value,
                "current_step": result.workflow.current_step,
                "version": result.workflow.version,
            },
        )
        return result

    def _complete(
        self, current: Workflow, step_number: int, form_data: StepFormData, now: datetime
    ) -> CommitResult:
        record = StepRecord(
            step_number=step_number,
            step_name=step_name(step_number),
            form_data=form_data,
            completed_at=now,
        )
        steps = [s for s in current.steps if s.step_number != step_number]
        steps.append(record)
        steps.sort(key=lambda s: s.step_number)

        advanced = current.model_copy(
            update={
                "steps": steps,
                "current_step": step_number,
                "version": current.version + 1,
                "updated_at": now,
            }
        )
        if advanced.current_step >= advanced.total_steps:
            advanced = advanced.model_copy(update={"completed_at": now})

        advanced, corrections = apply_cascade(advanced, at=now)
        return CommitResult(
            workflow=advanced,
            mode=StepMode.COMPLETE,
            step_number=step_number,
            corrections=corrections,
        )

    def _edit(
        self, current: Workflow, step_number: int, form_data: StepFormData, now: datetime
    ) -> CommitResult:
        previous = current.step(step_number)
        if previous is None:
            # Reached but never recorded (e.g. hand-edited state); recreate it in place.
            edited = StepRecord(
                step_number=step_number,
                step_name=step_name(step_number),
                form_data=form_data,
                completed_at=now,
                last_edited_at=now,
            )
        else:
            edited = previous.model_copy(update={"form_data": form_data, "last_edited_at": now})

        steps = [s for s in current.steps if s.step_number != step_number]
        steps.append(edited)
        steps.sort(key=lambda s: s.step_number)

        updated = current.model_copy(
            update={"steps": steps, "version": current.version + 1, "updated_at": now}
        )
        return CommitResult(
            workflow=updated,
            mode=StepMode.EDIT,
            step_number=step_number,
            previous=previous,
        )
