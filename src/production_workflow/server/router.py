"""Workflow and activity REST API.

All routes are mounted under `/api`. Handlers are thin: they translate the
wire format, call the step editor or the activity log, and map domain errors
onto HTTP status codes.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time

from fastapi import APIRouter, HTTPException, Query, Request

from production_workflow import __version__
from production_workflow.audit.activity_log import (
    DEFAULT_QUERY_LIMIT,
    ActivityAuditLog,
    ActivityEvent,
    ActivityFilter,
)
from production_workflow.server.models import (
    ApiActivityEvent,
    ApiActivitySummary,
    RecordActivityRequest,
    StartWorkflowRequest,
    StartWorkflowResponse,
    SubmitStepRequest,
    SubmitStepResponse,
    WorkflowDetail,
    WorkflowSummary,
)
from production_workflow.workflow.editor import StepEditor
from production_workflow.workflow.errors import (
    ConcurrencyConflictError,
    NotFoundError,
    OutOfSequenceError,
    StepValidationError,
    WorkflowError,
    WorkflowStateError,
)
from production_workflow.workflow.models import Actor

router = APIRouter()


def _editor(request: Request) -> StepEditor:
    editor = getattr(request.app.state, "editor", None)
    if not isinstance(editor, StepEditor):
        # This should never happen for the real app, but keeps the API fail-fast.
        raise HTTPException(status_code=500, detail="Step editor not configured")
    return editor


def _audit_log(request: Request) -> ActivityAuditLog:
    audit_log = getattr(request.app.state, "audit_log", None)
    if not isinstance(audit_log, ActivityAuditLog):
        raise HTTPException(status_code=500, detail="Activity log not configured")
    return audit_log


def _http_error(exc: WorkflowError) -> HTTPException:
    """Map a domain error to a response the client can act on."""

    if isinstance(exc, StepValidationError):
        return HTTPException(
            status_code=422,
            detail={"code": "validation_error", "message": str(exc), "errors": exc.errors},
        )
    if isinstance(exc, OutOfSequenceError):
        return HTTPException(
            status_code=409,
            detail={
                "code": exc.code,
                "message": str(exc),
                "expectedStep": exc.expected_step,
            },
        )
    if isinstance(exc, ConcurrencyConflictError):
        return HTTPException(
            status_code=409,
            detail={"code": exc.code, "message": str(exc), "currentVersion": exc.actual_version},
        )
    if isinstance(exc, WorkflowStateError):
        return HTTPException(status_code=500, detail={"code": "state_unreadable", "message": str(exc)})
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail={"code": "not_found", "message": str(exc)})
    return HTTPException(status_code=400, detail={"code": "workflow_error", "message": str(exc)})


def _parse_bound(value: str | None, *, end: bool) -> datetime | None:
    """Parse a date or datetime query value.

    A bare date covers the whole day: start of day for the lower bound, last
    instant of the day for the upper bound.
    """

    if value is None or not value.strip():
        return None
    raw = value.strip()
    try:
        if len(raw) == 10:
            day = date.fromisoformat(raw)
            return datetime.combine(day, time.max if end else time.min, tzinfo=UTC)
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid date: {value!r}") from e


@router.get("/health")
def health() -> dict[str, object]:
    return {"status": "ok", "ok": True, "version": __version__}


@router.post("/workflows", response_model=StartWorkflowResponse)
def start_workflow(req: StartWorkflowRequest, request: Request) -> StartWorkflowResponse:
    editor = _editor(request)
    # Without an explicit actor the assignee is acting on their own workflow.
    actor = (
        req.actor.to_actor()
        if req.actor is not None
        else Actor(id=req.assignee_id, display_name=req.assignee_id)
    )
    try:
        workflow, created = editor.start_workflow(
            schedule_id=req.schedule_id,
            assignee_id=req.assignee_id,
            department_name=req.department_name,
            actor=actor,
        )
    except WorkflowError as e:
        raise _http_error(e) from e
    summary = WorkflowSummary.from_workflow(workflow)
    return StartWorkflowResponse(**summary.model_dump(), created=created)


@router.get("/workflows", response_model=list[WorkflowSummary])
def list_workflows(
    request: Request,
    schedule_id: str | None = Query(default=None, alias="scheduleId"),
    assignee_id: str | None = Query(default=None, alias="assigneeId"),
) -> list[WorkflowSummary]:
    try:
        workflows = _editor(request).store.list(schedule_id=schedule_id, assignee_id=assignee_id)
    except WorkflowError as e:
        raise _http_error(e) from e
    return [WorkflowSummary.from_workflow(w) for w in workflows]


@router.get("/workflows/{workflow_id}", response_model=WorkflowDetail)
def get_workflow(workflow_id: str, request: Request) -> WorkflowDetail:
    try:
        workflow = _editor(request).store.get(workflow_id)
    except WorkflowError as e:
        raise _http_error(e) from e
    return WorkflowDetail.from_workflow(workflow)


@router.put("/workflows/{workflow_id}/steps/{step_number}", response_model=SubmitStepResponse)
def submit_step(
    workflow_id: str, step_number: int, req: SubmitStepRequest, request: Request
) -> SubmitStepResponse:
    editor = _editor(request)
    try:
        before = editor.store.get(workflow_id)
        actor = (
            req.actor.to_actor()
            if req.actor is not None
            else Actor(id=before.assignee_id, display_name=before.assignee_id)
        )
        mode = "edit" if 1 <= step_number <= before.current_step else "complete"
        if mode == "edit":
            workflow = editor.edit_step(
                workflow_id, step_number, req.form_data.to_form_data(), actor=actor
            )
        else:
            workflow = editor.complete_step(
                workflow_id, step_number, req.form_data.to_form_data(), actor=actor
            )
    except WorkflowError as e:
        raise _http_error(e) from e

    summary = WorkflowSummary.from_workflow(workflow)
    return SubmitStepResponse(**summary.model_dump(), mode=mode, step_number=step_number)


@router.post("/activity", response_model=ApiActivityEvent)
def record_activity(req: RecordActivityRequest, request: Request) -> ApiActivityEvent:
    missing = req.missing_fields()
    if missing:
        raise HTTPException(
            status_code=400,
            detail=f"Missing required fields: {', '.join(missing)}",
        )
    actor_id = (req.actor_id or "").strip()
    event = ActivityEvent(
        actor=Actor(id=actor_id, display_name=req.display_name or actor_id),
        subject_type=req.subject_type,
        subject_id=(req.subject_id or "").strip(),
        action=(req.action or "").strip(),
        timestamp=req.timestamp or datetime.now(tz=UTC),
        duration_ms=req.duration_ms,
        previous_values=req.previous_values,
        new_values=req.new_values,
        metadata=req.metadata,
    )
    stored = _audit_log(request).record_event(event)
    if stored is None:
        raise HTTPException(status_code=500, detail="Failed to record activity event")
    return ApiActivityEvent.from_event(stored)


def _activity_filter(
    *,
    subject_id: str | None,
    actor_id: str | None,
    action: str | None,
    start_date: str | None,
    end_date: str | None,
) -> ActivityFilter:
    return ActivityFilter(
        subject_id=subject_id or None,
        actor_id=actor_id or None,
        action=action or None,
        start=_parse_bound(start_date, end=False),
        end=_parse_bound(end_date, end=True),
    )


@router.get("/activity", response_model=list[ApiActivityEvent])
def query_activity(
    request: Request,
    subject_id: str | None = Query(default=None, alias="subjectId"),
    actor_id: str | None = Query(default=None, alias="actorId"),
    action: str | None = Query(default=None),
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    limit: int = Query(default=DEFAULT_QUERY_LIMIT, ge=1, le=1000),
) -> list[ApiActivityEvent]:
    flt = _activity_filter(
        subject_id=subject_id,
        actor_id=actor_id,
        action=action,
        start_date=start_date,
        end_date=end_date,
    )
    events = _audit_log(request).query(flt, limit)
    return [ApiActivityEvent.from_event(e) for e in events]


@router.get("/activity/timeline/{subject_id}", response_model=list[ApiActivityEvent])
def activity_timeline(
    subject_id: str,
    request: Request,
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
) -> list[ApiActivityEvent]:
    events = _audit_log(request).timeline(
        subject_id,
        start=_parse_bound(start_date, end=False),
        end=_parse_bound(end_date, end=True),
    )
    return [ApiActivityEvent.from_event(e) for e in events]


@router.get("/activity/summary", response_model=ApiActivitySummary)
def activity_summary(
    request: Request,
    subject_id: str | None = Query(default=None, alias="subjectId"),
    actor_id: str | None = Query(default=None, alias="actorId"),
    action: str | None = Query(default=None),
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    limit: int = Query(default=DEFAULT_QUERY_LIMIT, ge=1, le=10000),
) -> ApiActivitySummary:
    flt = _activity_filter(
        subject_id=subject_id,
        actor_id=actor_id,
        action=action,
        start_date=start_date,
        end_date=end_date,
    )
    return ApiActivitySummary.from_summary(_audit_log(request).summarize(flt, limit))
