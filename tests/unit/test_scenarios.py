"""End-to-end walk through one seven-step workflow."""

from __future__ import annotations

import pytest

from production_workflow.workflow.editor import (
    ACTION_SCHEDULE_COMPLETE,
    ACTION_STEP_EDIT,
    StepEditor,
)
from production_workflow.workflow.errors import OutOfSequenceError
from production_workflow.workflow.models import (
    Actor,
    DisplayStatus,
    RecordedStatus,
    WorkflowStatus,
)
from production_workflow.workflow.progression import derive_display_status


def test_full_walk_through(editor: StepEditor, actor: Actor, make_form) -> None:
    wf, created = editor.start_workflow(
        schedule_id="S1", assignee_id="Dr. X", department_name="Cardiology", actor=actor
    )
    assert created is True
    assert wf.current_step == 0

    # Step 1 shows as "going" until step 2 is done.
    wf = editor.complete_step(wf.id, 1, make_form(1, recorded_status="going"), actor=actor)
    assert wf.current_step == 1
    assert derive_display_status(wf, 1) is DisplayStatus.GOING

    wf = editor.complete_step(wf.id, 2, make_form(2), actor=actor)
    assert wf.current_step == 2
    assert wf.step(1).form_data.recorded_status is RecordedStatus.COMPLETED
    assert derive_display_status(wf, 1) is DisplayStatus.COMPLETED
    assert derive_display_status(wf, 2) is DisplayStatus.COMPLETED

    # Skipping ahead is rejected.
    with pytest.raises(OutOfSequenceError):
        editor.complete_step(wf.id, 5, make_form(5), actor=actor)
    assert editor.store.get(wf.id).current_step == 2

    # Editing an earlier step leaves progress alone.
    wf = editor.edit_step(wf.id, 1, make_form(1, reason="rescheduled"), actor=actor)
    assert wf.current_step == 2
    assert wf.step(1).form_data.reason == "rescheduled"
    edits = [e for e in editor.audit_log.timeline(wf.id) if e.action == ACTION_STEP_EDIT]
    assert len(edits) == 1

    for n in range(3, 8):
        wf = editor.complete_step(wf.id, n, make_form(n), actor=actor)

    assert wf.status is WorkflowStatus.COMPLETED
    assert wf.completed_at is not None
    done = editor.audit_log.timeline("S1")
    assert [e.action for e in done] == [ACTION_SCHEDULE_COMPLETE]
    expected_ms = int((wf.completed_at - wf.created_at).total_seconds() * 1000)
    assert done[0].duration_ms == expected_ms
