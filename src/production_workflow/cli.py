"""Console script shim; the CLI lives in `production_workflow.main`."""

from __future__ import annotations

from production_workflow.main import main

__all__ = ["main"]


if __name__ == "__main__":
    raise SystemExit(main())
