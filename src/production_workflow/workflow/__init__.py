"""Workflow domain concepts.

This package holds:
- the Workflow aggregate and its step records
- pure progression rules (transition legality, cascade, display status)
- a JSON document store with optimistic versioning
- the step editor that ties the store to the activity log

Import from the submodules directly; this package keeps no re-exports so that
the audit log can depend on the data model without an import cycle.
"""

__all__: list[str] = []
