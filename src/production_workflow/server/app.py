"""FastAPI app factory."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from production_workflow import __version__
from production_workflow.audit.activity_log import ActivityAuditLog
from production_workflow.config import WorkflowSettings
from production_workflow.server.router import router
from production_workflow.workflow.editor import StepEditor
from production_workflow.workflow.events import WorkflowChangeNotifier
from production_workflow.workflow.store import WorkflowStore

logger = logging.getLogger(__name__)


def build_editor(settings: WorkflowSettings) -> StepEditor:
    """Wire the store, activity log and notifier from settings."""

    store = WorkflowStore(settings.workflows_state_file, total_steps=settings.total_steps)
    audit_log = ActivityAuditLog.at_path(settings.activity_log_file)
    return StepEditor(store, audit_log, notifier=WorkflowChangeNotifier())


def create_app(settings: WorkflowSettings | None = None) -> FastAPI:
    settings = settings or WorkflowSettings()
    editor = build_editor(settings)

    app = FastAPI(
        title="Production Workflow",
        version=__version__,
        description="Step progression and activity log for scheduled production workflows.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    # Expose shared services for request handlers.
    app.state.settings = settings
    app.state.editor = editor
    app.state.audit_log = editor.audit_log
    app.state.notifier = editor.notifier

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    logger.info(
        "Workflow API ready",
        extra={
            "state_path": str(settings.state_path),
            "total_steps": settings.total_steps,
        },
    )
    return app
