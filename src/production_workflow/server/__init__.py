"""FastAPI server adapter for the production workflow service.

Design intent:
- Keep business logic in `production_workflow.workflow.*` and `production_workflow.audit.*`
- Keep server-specific concerns (routing, CORS, wire format) here
"""

from __future__ import annotations

__all__ = ["create_app"]

from production_workflow.server.app import create_app
