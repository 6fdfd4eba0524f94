"""Append-only activity log for audit and reporting."""

__all__: list[str] = []
