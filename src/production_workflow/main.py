"""CLI entrypoint for the production workflow service."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import timedelta

from pydantic import ValidationError

from production_workflow import __version__
from production_workflow.audit.activity_log import DEFAULT_QUERY_LIMIT, ActivityFilter
from production_workflow.config import WorkflowSettings
from production_workflow.logging import configure_logging
from production_workflow.server.app import build_editor
from production_workflow.workflow.errors import (
    ConcurrencyConflictError,
    OutOfSequenceError,
    StepValidationError,
    WorkflowError,
)
from production_workflow.workflow.models import Actor, StepFormData, Workflow, utc_now
from production_workflow.workflow.progression import display_statuses

logger = logging.getLogger(__name__)


def _actor(args: argparse.Namespace, fallback: str) -> Actor:
    actor_id = (args.actor_id or "").strip() or fallback
    return Actor(id=actor_id, display_name=(args.actor_name or "").strip() or actor_id)


def _print_workflow(workflow: Workflow) -> None:
    print(
        f"Workflow {workflow.id} ({workflow.schedule_id} / {workflow.assignee_id}): "
        f"step {workflow.current_step}/{workflow.total_steps}, {workflow.status.value}"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="production-workflow",
        description="Step progression and activity log for scheduled production workflows",
    )
    parser.add_argument(
        "--version", action="version", version=f"production-workflow {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_actor_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--actor-id", default="", help="Who performs the action")
        p.add_argument("--actor-name", default="", help="Display name of the actor")

    start = subparsers.add_parser("start", help="Start or resume a workflow")
    start.add_argument("--schedule-id", required=True)
    start.add_argument("--assignee-id", required=True, help="e.g. the doctor's name")
    start.add_argument("--department", required=True, help="Department name")
    add_actor_args(start)

    submit = subparsers.add_parser(
        "submit",
        help="Complete the next step, or edit a step that is already completed",
    )
    submit.add_argument("--workflow-id", required=True)
    submit.add_argument("--step", type=int, required=True, help="Step number (1-based)")
    submit.add_argument("--name", default="")
    submit.add_argument(
        "--language",
        dest="languages",
        action="append",
        default=[],
        help="Language (repeatable)",
    )
    submit.add_argument("--date", default="", help="YYYY-MM-DD")
    submit.add_argument(
        "--status",
        default="",
        choices=["", "going", "completed", "incomplete"],
        help="Recorded status for the step",
    )
    submit.add_argument("--reason", default="")
    add_actor_args(submit)

    show = subparsers.add_parser("show", help="Show a workflow and its step statuses")
    show.add_argument("--workflow-id", required=True)

    list_cmd = subparsers.add_parser("list", help="List workflows")
    list_cmd.add_argument("--schedule-id", default=None)
    list_cmd.add_argument("--assignee-id", default=None)

    timeline = subparsers.add_parser("timeline", help="Activity timeline for a subject")
    timeline.add_argument("--subject-id", required=True)

    summary = subparsers.add_parser("summary", help="Summarize recorded activity")
    summary.add_argument("--actor-id", default=None)
    summary.add_argument("--subject-id", default=None)
    summary.add_argument("--action", default=None)
    summary.add_argument("--days", type=int, default=30, help="Look-back window in days")
    summary.add_argument("--limit", type=int, default=DEFAULT_QUERY_LIMIT)

    serve = subparsers.add_parser("serve", help="Run the REST API")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = WorkflowSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    if args.command == "serve":
        import uvicorn

        from production_workflow.server.app import create_app

        host = args.host or settings.host
        port = args.port or settings.port
        logger.info("Starting workflow API", extra={"host": host, "port": port})
        uvicorn.run(create_app(settings), host=host, port=port, log_config=None)
        return 0

    editor = build_editor(settings)

    try:
        if args.command == "start":
            workflow, created = editor.start_workflow(
                schedule_id=args.schedule_id,
                assignee_id=args.assignee_id,
                department_name=args.department,
                actor=_actor(args, args.assignee_id),
            )
            print("Created" if created else "Resumed", end=" ")
            _print_workflow(workflow)
            return 0

        if args.command == "submit":
            try:
                form_data = StepFormData(
                    name=args.name,
                    languages=args.languages,
                    date=args.date or None,
                    recorded_status=args.status or None,
                    reason=args.reason,
                )
            except ValidationError as e:
                print(f"Invalid step data: {e}", file=sys.stderr)
                return 1
            current = editor.store.get(args.workflow_id)
            workflow = editor.submit_step(
                args.workflow_id,
                args.step,
                form_data,
                actor=_actor(args, current.assignee_id),
            )
            _print_workflow(workflow)
            return 0

        if args.command == "show":
            workflow = editor.store.get(args.workflow_id)
            _print_workflow(workflow)
            for number, status in display_statuses(workflow).items():
                record = workflow.step(number)
                label = record.step_name if record else ""
                print(f"  {number}. {status.value:<12} {label}")
            return 0

        if args.command == "list":
            for workflow in editor.store.list(
                schedule_id=args.schedule_id, assignee_id=args.assignee_id
            ):
                _print_workflow(workflow)
            return 0

        if args.command == "timeline":
            for event in editor.audit_log.timeline(args.subject_id):
                print(event.model_dump_json())
            return 0

        if args.command == "summary":
            flt = ActivityFilter(
                actor_id=args.actor_id,
                subject_id=args.subject_id,
                action=args.action,
                start=utc_now() - timedelta(days=args.days),
            )
            result = editor.audit_log.summarize(flt, args.limit)
            print(json.dumps(result.model_dump(mode="json"), indent=2))
            return 0

    except StepValidationError as e:
        for field, message in sorted(e.errors.items()):
            print(f"{field}: {message}", file=sys.stderr)
        return 1
    except OutOfSequenceError as e:
        print(f"Out of order: {e}", file=sys.stderr)
        return 1
    except ConcurrencyConflictError as e:
        print(f"Conflict: {e}", file=sys.stderr)
        return 1
    except WorkflowError as e:
        print(str(e), file=sys.stderr)
        return 1

    parser.error(f"Unknown command: {args.command}")
    return 2
