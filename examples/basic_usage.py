#!/usr/bin/env python3
"""Programmatic workflow example.

This demonstrates using the workflow components directly:

* load settings from `.env`
* start (or resume) the workflow for one schedule and assignee
* complete the next step and print the resulting step statuses

State is persisted under `WORKFLOW_STATE_PATH` (default `workflow_state/`).
"""

from __future__ import annotations

import argparse
from collections.abc import Sequence

from production_workflow.config import WorkflowSettings
from production_workflow.logging import configure_logging
from production_workflow.server.app import build_editor
from production_workflow.workflow.errors import WorkflowError
from production_workflow.workflow.models import Actor, StepFormData
from production_workflow.workflow.progression import display_statuses


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Advance a workflow by one step (example).")
    parser.add_argument("--schedule-id", required=True)
    parser.add_argument("--assignee-id", required=True)
    parser.add_argument("--department", default="General")
    parser.add_argument(
        "--languages",
        default="English",
        help='Comma-separated languages, e.g. "English,Hindi"',
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = WorkflowSettings()
    configure_logging(settings.log_level)
    editor = build_editor(settings)
    actor = Actor(id=args.assignee_id, display_name=args.assignee_id)

    workflow, created = editor.start_workflow(
        schedule_id=args.schedule_id,
        assignee_id=args.assignee_id,
        department_name=args.department,
        actor=actor,
    )
    print(f"{'Created' if created else 'Resumed'} workflow {workflow.id}")

    if workflow.current_step >= workflow.total_steps:
        print("All steps are already complete")
        return 0

    next_step = workflow.current_step + 1
    form = StepFormData(
        name=args.assignee_id,
        languages=[lang.strip() for lang in args.languages.split(",") if lang.strip()],
        date="2026-01-01",
        recorded_status="completed",
        reason="example run",
    )
    try:
        workflow = editor.complete_step(workflow.id, next_step, form, actor=actor)
    except WorkflowError as exc:
        print(str(exc))
        return 1

    for number, status in display_statuses(workflow).items():
        print(f"  step {number}: {status.value}")
    print(f"Persisted to: {settings.workflows_state_file}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
