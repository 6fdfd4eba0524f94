from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

from production_workflow.workflow.models import Workflow

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class WorkflowChange:
    """A committed change to a workflow.

    Subscribers receive these after the store write succeeds. They are
    notifications only; the workflow in the store is the source of truth.
    """

    type: str
    workflow: Workflow
    step_number: int | None = None


WorkflowListener = Callable[[WorkflowChange], None]


class WorkflowChangeNotifier:
    """In-process subscription point for workflow changes."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: list[WorkflowListener] = []

    def subscribe(self, listener: WorkflowListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, change: WorkflowChange) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(change)
            except Exception:
                logger.exception(
                    "Workflow change listener failed",
                    extra={"change_type": change.type, "workflow_id": change.workflow.id},
                )
