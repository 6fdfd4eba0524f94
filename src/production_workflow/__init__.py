"""Production workflow service.

Tracks one assignee's progress through the fixed, ordered production steps of
a scheduled shoot, and keeps an append-only activity log of every change.
"""

__version__ = "0.1.0"

from production_workflow.config import WorkflowSettings

__all__ = ["__version__", "WorkflowSettings"]
