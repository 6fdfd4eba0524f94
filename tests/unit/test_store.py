from __future__ import annotations

import json
import threading
from datetime import UTC, datetime
from pathlib import Path

import pytest

from production_workflow.workflow.errors import (
    ConcurrencyConflictError,
    OutOfSequenceError,
    StepNotFoundError,
    WorkflowNotFoundError,
    WorkflowStateError,
)
from production_workflow.workflow.models import RecordedStatus, StepMode, WorkflowStatus
from production_workflow.workflow.store import WorkflowStore

T0 = datetime(2026, 3, 14, 9, 0, tzinfo=UTC)


def test_get_or_create_is_idempotent(store: WorkflowStore) -> None:
    first, created = store.get_or_create("sched-1", "Dr. Rao", "Cardiology")
    again, created_again = store.get_or_create("sched-1", "Dr. Rao", "Other department")

    assert created is True
    assert created_again is False
    assert again.id == first.id
    assert again.department_name == "Cardiology"
    assert first.current_step == 0
    assert first.status is WorkflowStatus.NOT_STARTED
    assert len(store.list()) == 1


def test_get_or_create_concurrent_callers_share_one_workflow(store: WorkflowStore) -> None:
    results = []
    barrier = threading.Barrier(8)

    def worker() -> None:
        barrier.wait()
        results.append(store.get_or_create("sched-1", "Dr. Rao", "Cardiology"))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len({wf.id for wf, _ in results}) == 1
    assert sum(1 for _, created in results if created) == 1
    assert len(store.list()) == 1


def test_distinct_keys_create_distinct_workflows(store: WorkflowStore) -> None:
    a, _ = store.get_or_create("sched-1", "Dr. Rao", "Cardiology")
    b, _ = store.get_or_create("sched-1", "Dr. Iyer", "Cardiology")
    c, _ = store.get_or_create("sched-2", "Dr. Rao", "Cardiology")

    assert len({a.id, b.id, c.id}) == 3
    assert {w.id for w in store.list(schedule_id="sched-1")} == {a.id, b.id}
    assert {w.id for w in store.list(assignee_id="Dr. Rao")} == {a.id, c.id}
    assert store.find("sched-2", "Dr. Rao").id == c.id
    assert store.find("sched-2", "Dr. Iyer") is None


def test_get_unknown_workflow_raises(store: WorkflowStore) -> None:
    with pytest.raises(WorkflowNotFoundError):
        store.get("missing")


def test_complete_advances_and_persists(store: WorkflowStore, make_form) -> None:
    wf, _ = store.get_or_create("sched-1", "Dr. Rao", "Cardiology")

    result = store.commit_step(wf.id, 1, make_form(1), StepMode.COMPLETE, at=T0)

    assert result.mode is StepMode.COMPLETE
    assert result.workflow.current_step == 1
    assert result.workflow.version == wf.version + 1
    assert result.workflow.step(1).completed_at == T0
    assert result.workflow.step(1).step_name == "Going To Shoot"

    reloaded = WorkflowStore(store.path).get(wf.id)
    assert reloaded.current_step == 1
    assert reloaded.step(1).form_data.name == "Dr. Rao step 1"


def test_out_of_sequence_leaves_file_untouched(store: WorkflowStore, make_form) -> None:
    wf, _ = store.get_or_create("sched-1", "Dr. Rao", "Cardiology")
    before = store.path.read_bytes()

    with pytest.raises(OutOfSequenceError):
        store.commit_step(wf.id, 3, make_form(3), StepMode.COMPLETE)

    assert store.path.read_bytes() == before


def test_edit_of_unreached_step_is_not_found(store: WorkflowStore, make_form) -> None:
    wf, _ = store.get_or_create("sched-1", "Dr. Rao", "Cardiology")
    store.commit_step(wf.id, 1, make_form(1), StepMode.COMPLETE)

    with pytest.raises(StepNotFoundError):
        store.commit_step(wf.id, 2, make_form(2), StepMode.EDIT)


def test_edit_replaces_only_that_step(store: WorkflowStore, make_form) -> None:
    wf, _ = store.get_or_create("sched-1", "Dr. Rao", "Cardiology")
    for n in (1, 2, 3):
        store.commit_step(wf.id, n, make_form(n), StepMode.COMPLETE, at=T0)
    before = store.get(wf.id)

    result = store.commit_step(
        wf.id, 2, make_form(2, reason="reshoot"), StepMode.EDIT, at=datetime(2026, 3, 15, tzinfo=UTC)
    )

    after = result.workflow
    assert after.current_step == 3
    assert after.step(2).form_data.reason == "reshoot"
    assert after.step(2).completed_at == T0
    assert after.step(2).last_edited_at == datetime(2026, 3, 15, tzinfo=UTC)
    assert after.step(1) == before.step(1)
    assert after.step(3) == before.step(3)
    assert result.previous is not None
    assert result.previous.form_data.reason == "on schedule"


def test_stale_version_is_rejected(store: WorkflowStore, make_form) -> None:
    wf, _ = store.get_or_create("sched-1", "Dr. Rao", "Cardiology")
    store.commit_step(wf.id, 1, make_form(1), StepMode.COMPLETE, expected_version=wf.version)

    with pytest.raises(ConcurrencyConflictError) as exc:
        store.commit_step(wf.id, 2, make_form(2), StepMode.COMPLETE, expected_version=wf.version)

    assert exc.value.actual_version == wf.version + 1
    assert store.get(wf.id).current_step == 1


def test_concurrent_completions_of_same_step_yield_one_winner(
    store: WorkflowStore, make_form
) -> None:
    wf, _ = store.get_or_create("sched-1", "Dr. Rao", "Cardiology")
    outcomes: list[str] = []
    barrier = threading.Barrier(2)

    def worker() -> None:
        barrier.wait()
        try:
            store.commit_step(wf.id, 1, make_form(1), StepMode.COMPLETE)
            outcomes.append("ok")
        except OutOfSequenceError:
            outcomes.append("rejected")

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["ok", "rejected"]
    assert len(store.get(wf.id).steps) == 1


def test_completing_step_two_applies_cascade(store: WorkflowStore, make_form) -> None:
    wf, _ = store.get_or_create("sched-1", "Dr. Rao", "Cardiology")
    store.commit_step(wf.id, 1, make_form(1, recorded_status="going"), StepMode.COMPLETE)

    result = store.commit_step(wf.id, 2, make_form(2), StepMode.COMPLETE)

    assert result.workflow.step(1).form_data.recorded_status is RecordedStatus.COMPLETED
    assert [c.step_number for c in result.corrections] == [1]
    assert store.get(wf.id).step(1).form_data.recorded_status is RecordedStatus.COMPLETED


def test_final_step_marks_workflow_completed(temp_state_dir: Path, make_form) -> None:
    store = WorkflowStore(temp_state_dir / "wf.json", total_steps=2)
    wf, _ = store.get_or_create("sched-1", "Dr. Rao", "Cardiology")
    store.commit_step(wf.id, 1, make_form(1), StepMode.COMPLETE, at=T0)
    done = store.commit_step(wf.id, 2, make_form(2), StepMode.COMPLETE, at=T0).workflow

    assert done.status is WorkflowStatus.COMPLETED
    assert done.completed_at == T0
    with pytest.raises(StepNotFoundError):
        store.commit_step(wf.id, 3, make_form(3), StepMode.COMPLETE)


def test_truncated_state_file_is_never_overwritten(store: WorkflowStore, make_form) -> None:
    first, _ = store.get_or_create("sched-1", "Dr. Rao", "Cardiology")
    store.get_or_create("sched-2", "Dr. Rao", "Cardiology")
    damaged = store.path.read_bytes()[:-20]
    store.path.write_bytes(damaged)

    with pytest.raises(WorkflowStateError):
        store.get_or_create("sched-3", "Dr. Rao", "Cardiology")
    with pytest.raises(WorkflowStateError):
        store.commit_step(first.id, 1, make_form(1), StepMode.COMPLETE)
    with pytest.raises(WorkflowStateError):
        store.list()

    assert store.path.read_bytes() == damaged


@pytest.mark.parametrize("content", ["{}", "[{\"id\": 1}]"])
def test_unexpected_state_shape_is_an_error(temp_state_dir: Path, content: str) -> None:
    path = temp_state_dir / "workflows.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(WorkflowStateError):
        WorkflowStore(path).get_or_create("sched-1", "Dr. Rao", "Cardiology")
    assert path.read_text(encoding="utf-8") == content


def test_creation_time_can_be_supplied(store: WorkflowStore) -> None:
    wf, _ = store.get_or_create("sched-1", "Dr. Rao", "Cardiology", at=T0)

    assert wf.created_at == T0
    assert wf.updated_at == T0
    assert store.get(wf.id).created_at == T0


def test_state_file_is_plain_json(store: WorkflowStore) -> None:
    wf, _ = store.get_or_create("sched-1", "Dr. Rao", "Cardiology")

    raw = json.loads(store.path.read_text(encoding="utf-8"))
    assert raw[0]["id"] == wf.id
    assert raw[0]["schedule_id"] == "sched-1"
    assert raw[0]["steps"] == []
